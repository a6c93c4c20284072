#!/usr/bin/env python
"""
Email Search Manager

This module provides filtered full-text search over the email index table.
Text queries use PostgreSQL FTS on the same expression the GIN index is built
on; account, folder, label and date filters narrow the result.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from psycopg2 import sql

from mail_indexer.data.email_data import DEFAULT_INDEX_TABLE, FTS_DOCUMENT_SQL, row_to_document

logger = logging.getLogger(__name__)


class EmailSearchManager:
    """
    Search indexed emails.

    Results are ranked by FTS relevance when a text query is given and by
    received date (newest first) otherwise.
    """

    def __init__(
        self,
        postgres_manager: Any,
        table_name: str = DEFAULT_INDEX_TABLE,
        default_size: int = 50,
        max_size: int = 100,
    ) -> None:
        """
        Initialize the search manager.

        Args:
            postgres_manager: PostgreSQL manager instance
            table_name: Email index table
            default_size: Page size when none is requested
            max_size: Upper bound on the page size
        """
        self.db_manager = postgres_manager
        self.table_name = table_name
        self.default_size = default_size
        self.max_size = max_size
        logger.info("Email search manager initialized for %s", table_name)

    def clamp_size(self, size: Optional[int]) -> int:
        if size is None or size <= 0:
            size = self.default_size
        return min(self.max_size, size)

    def search(
        self,
        q: Optional[str] = None,
        account: Optional[str] = None,
        folder: Optional[str] = None,
        label: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        size: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Search the index.

        Args:
            q: Free text matched against subject, bodies and addresses
            account: Exact account id
            folder: Exact folder name
            label: Label the document must carry
            from_date: Inclusive lower bound on the received date
            to_date: Inclusive upper bound on the received date
            size: Maximum number of hits

        Returns:
            Dictionary with ``total`` matching documents and the ``hits`` page
        """
        conditions: List[sql.Composable] = []
        params: List[Any] = []
        query_text = (q or "").strip()

        if query_text:
            conditions.append(sql.SQL(FTS_DOCUMENT_SQL + " @@ plainto_tsquery('english', %s)"))
            params.append(query_text)
        if account:
            conditions.append(sql.SQL("account_id = %s"))
            params.append(str(account))
        if folder:
            conditions.append(sql.SQL("folder = %s"))
            params.append(folder)
        if label:
            conditions.append(sql.SQL("%s = ANY(labels)"))
            params.append(label)
        if from_date:
            conditions.append(sql.SQL("received_at >= %s"))
            params.append(from_date)
        if to_date:
            conditions.append(sql.SQL("received_at <= %s"))
            params.append(to_date)

        where = sql.SQL("")
        if conditions:
            where = sql.SQL("WHERE ") + sql.SQL(" AND ").join(conditions)

        if query_text:
            order = sql.SQL(
                "ORDER BY ts_rank(" + FTS_DOCUMENT_SQL + ", plainto_tsquery('english', %s)) DESC, received_at DESC"
            )
            params.append(query_text)
        else:
            order = sql.SQL("ORDER BY received_at DESC NULLS LAST")

        limit = self.clamp_size(size)
        params.append(limit)
        query = sql.SQL("SELECT *, COUNT(*) OVER() AS total_count FROM {table} {where} {order} LIMIT %s").format(
            table=sql.Identifier(self.table_name),
            where=where,
            order=order,
        )

        logger.info(
            "Searching emails q=%r account=%s folder=%s label=%s size=%d",
            query_text[:50], account, folder, label, limit,
        )
        with self.db_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rows = cur.fetchall()

        total = int(rows[0]["total_count"]) if rows else 0
        hits = []
        for row in rows:
            doc = row_to_document(row)
            doc["id"] = doc["doc_id"]
            hits.append(doc)
        logger.debug("Email search returned %d of %d hits", len(hits), total)
        return {"total": total, "hits": hits}

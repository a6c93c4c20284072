#!/usr/bin/env python
"""
Email Index Gateway

This module owns the email document index: deterministic document identity,
existence checks for deduplication, idempotent upserts, lookups and the
idempotent schema bootstrap. It knows nothing about IMAP.
"""

import base64
import logging
import random
import time
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from psycopg2 import sql

from ..core.exceptions import IndexFailure
from ..core.models import EmailDocument
from .base_data import BaseDataManager

logger = logging.getLogger(__name__)

DEFAULT_INDEX_TABLE = "emails_v1"

# Text searched by the API; the GIN index is built on the same expression.
FTS_DOCUMENT_SQL = (
    "to_tsvector('english', COALESCE(subject, '') || ' ' || COALESCE(body_text, '') || ' ' || "
    "COALESCE(body_html, '') || ' ' || COALESCE(from_addr, '') || ' ' || COALESCE(to_addrs, ''))"
)

_DOCUMENT_COLUMNS = (
    "doc_id", "message_id", "account_id", "folder", "from_addr", "to_addrs",
    "subject", "body_text", "body_html", "received_at", "labels", "raw",
)


def _placeholder_message_id() -> str:
    return f"{int(time.time() * 1000)}-{random.random()}"


def encode_message_id(message_id: str) -> str:
    """Return the unpadded URL-safe base64 form of a message id."""
    return base64.urlsafe_b64encode(message_id.encode("utf-8")).rstrip(b"=").decode("ascii")


def document_id(account_id: Union[int, str], message_id: str) -> str:
    """
    Build the index identity of a message.

    An empty message id is replaced by a timestamp/random placeholder so an
    identity is never derived from the empty string.
    """
    encoded = encode_message_id(message_id or _placeholder_message_id())
    return f"{account_id}_{encoded}"


def row_to_document(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert an index row into a JSON friendly dictionary."""
    doc = {column: row.get(column) for column in _DOCUMENT_COLUMNS}
    received_at = doc.get("received_at")
    if isinstance(received_at, datetime):
        doc["received_at"] = received_at.isoformat()
    doc["labels"] = list(doc.get("labels") or [])
    return doc


class EmailIndexGateway(BaseDataManager):
    """
    Dedup-aware access to the email index table.

    Every call is an independent request; concurrent writers of the same
    document resolve by last-write-wins.
    """

    def __init__(self, postgres_manager: Any, table_name: str = DEFAULT_INDEX_TABLE) -> None:
        super().__init__(postgres_manager)
        self.table_name = table_name
        self._table = sql.Identifier(table_name)

    # =============================================================================
    # Schema
    # =============================================================================

    def ensure_index(self) -> bool:
        """
        Create the index table and its search indexes when absent.

        Returns:
            True if the table was created, False if it already existed
        """
        try:
            row = self.execute_query(
                "SELECT to_regclass(%s) AS regclass", (self.table_name,), fetch_one=True
            )
            if row and row.get("regclass"):
                logger.info("Email index exists: %s", self.table_name)
                return False

            statements = [
                sql.SQL("""
                    CREATE TABLE IF NOT EXISTS {table} (
                        doc_id TEXT PRIMARY KEY,
                        message_id TEXT NOT NULL,
                        account_id TEXT NOT NULL,
                        folder TEXT,
                        from_addr TEXT,
                        to_addrs TEXT,
                        subject TEXT,
                        body_text TEXT,
                        body_html TEXT,
                        received_at TIMESTAMP WITH TIME ZONE,
                        labels TEXT[] NOT NULL DEFAULT '{{}}',
                        raw TEXT,
                        indexed_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                    )
                """),
                sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {table}(account_id)"),
                sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {table}(folder)"),
                sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {table}(received_at)"),
                sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {table} USING GIN(labels)"),
                sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {table} USING GIN(" + FTS_DOCUMENT_SQL + ")"),
            ]
            suffixes = ["", "account", "folder", "received", "labels", "fts"]
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    for statement, suffix in zip(statements, suffixes):
                        cur.execute(statement.format(
                            table=self._table,
                            name=sql.Identifier(f"idx_{self.table_name}_{suffix}"),
                        ))
            logger.info("Email index created: %s", self.table_name)
            return True
        except Exception as e:
            logger.error(f"Error ensuring email index {self.table_name}: {e}")
            raise

    # =============================================================================
    # Document Operations
    # =============================================================================

    def exists(self, account_id: Union[int, str], message_id: str) -> bool:
        """
        Check whether a message is already indexed.

        A failing lookup counts as "not seen" so the message gets indexed
        again rather than lost.
        """
        doc_id = document_id(account_id, message_id)
        try:
            row = self.execute_query(
                sql.SQL("SELECT 1 AS found FROM {table} WHERE doc_id = %s").format(table=self._table),
                (doc_id,),
                fetch_one=True,
            )
            return row is not None
        except Exception as e:
            logger.error("Error checking document exists %s: %s", doc_id, e)
            return False

    def upsert(self, document: EmailDocument) -> str:
        """
        Write or overwrite a document at its computed identity.

        Returns:
            The document id

        Raises:
            IndexFailure: If the store rejects the write
        """
        doc_id = document_id(document.account_id, document.message_id)
        query = sql.SQL("""
            INSERT INTO {table} (
                doc_id, message_id, account_id, folder, from_addr, to_addrs,
                subject, body_text, body_html, received_at, labels, raw
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (doc_id)
            DO UPDATE SET
                message_id = EXCLUDED.message_id,
                account_id = EXCLUDED.account_id,
                folder = EXCLUDED.folder,
                from_addr = EXCLUDED.from_addr,
                to_addrs = EXCLUDED.to_addrs,
                subject = EXCLUDED.subject,
                body_text = EXCLUDED.body_text,
                body_html = EXCLUDED.body_html,
                received_at = EXCLUDED.received_at,
                labels = EXCLUDED.labels,
                raw = EXCLUDED.raw,
                indexed_at = NOW()
        """).format(table=self._table)
        params = (
            doc_id,
            document.message_id,
            str(document.account_id),
            document.folder,
            document.from_addr,
            document.to_addrs,
            document.subject,
            document.body_text,
            document.body_html,
            document.received_at,
            list(document.labels),
            document.raw,
        )
        try:
            self.execute_query(query, params)
        except Exception as e:
            logger.error("Failed to index email %s: %s", doc_id, e)
            raise IndexFailure(f"Failed to index email {doc_id}: {e}") from e
        logger.debug("Indexed email %s", doc_id)
        return doc_id

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a stored document by id, or None when absent."""
        row = self.execute_query(
            sql.SQL("SELECT * FROM {table} WHERE doc_id = %s").format(table=self._table),
            (doc_id,),
            fetch_one=True,
        )
        return row_to_document(row) if row else None

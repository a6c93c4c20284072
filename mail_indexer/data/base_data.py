#!/usr/bin/env python
"""
Base Data Manager

Query helpers shared by the account store and the email index gateway.
"""

import logging
from typing import Any, Optional, Sequence

logger = logging.getLogger(__name__)


class BaseDataManager:
    """
    Common plumbing for the table-specific data managers.

    Subclasses receive the pooled :class:`PostgreSQLManager` and issue one
    autocommitted statement per call through :meth:`execute_query`.
    """

    def __init__(self, postgres_manager: Any) -> None:
        self.postgres_manager = postgres_manager
        logger.info(f"{self.__class__.__name__} initialized")

    def get_connection(self):
        return self.postgres_manager.get_connection()

    def execute_query(self, query: Any, params: Optional[Sequence[Any]] = None,
                      fetch_one: bool = False, fetch_all: bool = False):
        """
        Run one statement and optionally return its rows.

        Args:
            query: SQL string or ``psycopg2.sql`` composable
            params: Query parameters
            fetch_one: Return the first row (``RealDictCursor`` dict) or None
            fetch_all: Return every row

        Returns:
            The requested rows, or None when nothing is fetched

        Raises:
            Whatever the driver raised; the failing query is logged first
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params or ())
                    if fetch_one:
                        return cur.fetchone()
                    if fetch_all:
                        return cur.fetchall()
                    return None
        except Exception as e:
            logger.error(f"{self.__class__.__name__} query failed: {e}")
            logger.debug(f"Query: {query}")
            raise

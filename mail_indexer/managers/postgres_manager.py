"""
PostgreSQL Database Manager for the Mail Indexer.

Owns the connection pool shared by the web threads and every account worker,
and creates the ``accounts`` table on startup. The email index table is
bootstrapped by :class:`EmailIndexGateway` because its name is configurable.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import PoolError, ThreadedConnectionPool

from ..core.config import Config

logger = logging.getLogger(__name__)

ACCOUNTS_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    host TEXT NOT NULL,
    port INTEGER NOT NULL,
    secure BOOLEAN NOT NULL DEFAULT TRUE,
    username TEXT NOT NULL,
    password TEXT NOT NULL,
    enabled BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_accounts_enabled ON accounts(enabled);
"""


@dataclass
class PostgreSQLConfig:
    """Connection settings for the pool."""
    host: str = "localhost"
    port: int = 5432
    database: str = "mail_index"
    user: str = "mail_user"
    password: str = ""
    min_connections: int = 2
    max_connections: int = 20

    @classmethod
    def from_config(cls, config: Config) -> "PostgreSQLConfig":
        return cls(
            host=config.POSTGRES_HOST,
            port=config.POSTGRES_PORT,
            database=config.POSTGRES_DB,
            user=config.POSTGRES_USER,
            password=config.POSTGRES_PASSWORD,
            max_connections=config.POSTGRES_MAX_CONNECTIONS,
        )


class PostgreSQLManager:
    """Pooled access to the account store and the email index."""

    def __init__(self, config: Optional[PostgreSQLConfig] = None):
        """
        Open the pool and make sure the account schema exists.

        Args:
            config: Connection settings; defaults to :class:`PostgreSQLConfig`
        """
        self.config = config or PostgreSQLConfig()
        self.pool: Optional[ThreadedConnectionPool] = None
        self._initialize_pool()
        self._ensure_schema()

    def _initialize_pool(self) -> None:
        try:
            self.pool = ThreadedConnectionPool(
                self.config.min_connections,
                self.config.max_connections,
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.user,
                password=self.config.password,
                cursor_factory=RealDictCursor
            )
        except psycopg2.Error as e:
            logger.error(f"Cannot open PostgreSQL pool for {self.config.database}@{self.config.host}: {e}")
            raise
        logger.info(
            f"PostgreSQL pool ready for {self.config.database}@{self.config.host}:{self.config.port} "
            f"({self.config.min_connections}-{self.config.max_connections} connections)"
        )

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        """
        Borrow an autocommit connection from the pool.

        Every statement commits on its own, so concurrent workers never hold
        a transaction open across IMAP round trips.
        """
        if self.pool is None:
            raise RuntimeError("PostgreSQL pool is closed")
        try:
            conn = self.pool.getconn()
        except PoolError as e:
            logger.error(f"No PostgreSQL connection available: {e}")
            raise
        try:
            conn.autocommit = True
            yield conn
        except Exception as e:
            logger.error(f"Database operation failed: {e} ({type(e).__name__})")
            raise
        finally:
            self.pool.putconn(conn)

    def _ensure_schema(self) -> None:
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(ACCOUNTS_SCHEMA_SQL)
        logger.info("Account schema ready")

    def get_version_info(self) -> Dict[str, Any]:
        """Report whether the database answers, with its short version string."""
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT version()")
                    row = cur.fetchone()
        except Exception as e:
            logger.warning(f"PostgreSQL health check failed: {e}")
            return {"connected": False, "error": str(e)}

        version = row['version'] if row else "Unknown"
        # "PostgreSQL 15.4 on x86_64-pc-linux-gnu, ..." -> "PostgreSQL 15.4"
        return {"connected": True, "version": version.split(' on ')[0]}

    def close(self) -> None:
        if self.pool is not None:
            self.pool.closeall()
            self.pool = None
            logger.info("PostgreSQL pool closed")


__all__ = ["PostgreSQLManager", "PostgreSQLConfig"]

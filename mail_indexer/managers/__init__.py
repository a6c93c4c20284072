"""Database connection managers."""

from .postgres_manager import PostgreSQLConfig, PostgreSQLManager

__all__ = ["PostgreSQLConfig", "PostgreSQLManager"]

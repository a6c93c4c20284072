"""
Core configuration module for the Mail Indexer.

All settings are read from environment variables (optionally populated from a
``.env`` file) into a single dataclass so the rest of the application never
touches ``os.environ`` directly.
"""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """
    Application configuration.

    Values default to environment variables so a deployment only needs to
    export what differs from the defaults.
    """

    # Flask Configuration
    FLASK_HOST: str = os.getenv("FLASK_HOST", "0.0.0.0")
    FLASK_PORT: int = int(os.getenv("FLASK_PORT", "3000"))
    FLASK_DEBUG: bool = _env_bool("FLASK_DEBUG", "false")

    # Logging
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # PostgreSQL Configuration
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "mail_index")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "mail_user")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "secure_password")
    POSTGRES_MAX_CONNECTIONS: int = int(os.getenv("POSTGRES_MAX_CONNECTIONS", "20"))

    # Index table holding email documents
    EMAIL_INDEX_TABLE: str = os.getenv("EMAIL_INDEX_TABLE", "emails_v1")

    # Credential encryption
    EMAILS_MASTER_KEY: Optional[str] = os.getenv("EMAILS_MASTER_KEY") or None

    # Account worker behaviour
    BACKFILL_DAYS: int = int(os.getenv("BACKFILL_DAYS", "30"))
    RECONNECT_BASE_SECONDS: float = float(os.getenv("RECONNECT_BASE_SECONDS", "1"))
    RECONNECT_MAX_SECONDS: float = float(os.getenv("RECONNECT_MAX_SECONDS", "30"))
    IMAP_IDLE_SECONDS: float = float(os.getenv("IMAP_IDLE_SECONDS", "10"))
    IMAP_TIMEOUT_SECONDS: float = float(os.getenv("IMAP_TIMEOUT_SECONDS", "60"))
    IMAP_REQUIRE_STARTTLS: bool = _env_bool("IMAP_REQUIRE_STARTTLS", "true")
    WORKER_STOP_TIMEOUT_SECONDS: float = float(os.getenv("WORKER_STOP_TIMEOUT_SECONDS", "15"))

    # Search API
    SEARCH_DEFAULT_SIZE: int = int(os.getenv("SEARCH_DEFAULT_SIZE", "50"))
    SEARCH_MAX_SIZE: int = int(os.getenv("SEARCH_MAX_SIZE", "100"))

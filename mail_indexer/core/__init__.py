"""Core configuration, models and exceptions for the Mail Indexer."""

from .config import Config
from .exceptions import (
    AuthenticationFailure,
    CapabilityUnsupported,
    ConfigurationError,
    ConnectionFailure,
    IndexFailure,
    MailboxCommandError,
    MailIndexerError,
)
from .models import Account, EmailDocument, WorkerState

__all__ = [
    "Config",
    "Account",
    "EmailDocument",
    "WorkerState",
    "MailIndexerError",
    "ConfigurationError",
    "AuthenticationFailure",
    "CapabilityUnsupported",
    "ConnectionFailure",
    "IndexFailure",
    "MailboxCommandError",
]

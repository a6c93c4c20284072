"""Email ingestion: mailbox clients, account workers and the worker registry.

- IMAPConnector: imapclient-backed mailbox client
- MessageIndexer: parse, deduplicate and index one fetched message
- AccountWorker: per-account connection lifecycle, backfill and IDLE listening
- WorkerRegistry: at most one running worker per account
- EmailAccountManager: account creation with encrypted passwords
"""

from .account_manager import EmailAccountManager
from .connectors import IMAPConnector, MailboxClient
from .processor import IndexOutcome, MessageIndexer
from .registry import WorkerRegistry
from .worker import AccountWorker, MailboxSubscription, backoff_delay

__all__ = [
    "AccountWorker",
    "EmailAccountManager",
    "IMAPConnector",
    "IndexOutcome",
    "MailboxClient",
    "MailboxSubscription",
    "MessageIndexer",
    "WorkerRegistry",
    "backoff_delay",
]

"""Mailbox client implementations package.

- MailboxClient: Abstract base class defining the capability set workers use
- IMAPConnector: ``imapclient``-backed IMAP connection with IDLE support

Example Usage:
    from ingestion.email.connectors import IMAPConnector

    client = IMAPConnector(
        host="imap.example.com",
        username="user@example.com",
        password="password",
    )
    client.connect()
    client.open_mailbox("INBOX")
"""

from .base import FetchedMessage, MailboxClient, MailboxNode, flatten_mailboxes
from .imap_connector import IMAPConnector

__all__ = [
    "FetchedMessage",
    "IMAPConnector",
    "MailboxClient",
    "MailboxNode",
    "flatten_mailboxes",
]

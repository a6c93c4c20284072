"""Base abstract mailbox client class.

This module provides the abstract :class:`MailboxClient` base class that defines
the capability set account workers rely on, together with the small value
types exchanged across it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence


@dataclass
class MailboxNode:
    """One folder of a mailbox hierarchy."""

    name: str
    children: List["MailboxNode"] = field(default_factory=list)
    selectable: bool = True


@dataclass
class FetchedMessage:
    """A message as returned by :meth:`MailboxClient.fetch`."""

    seq: int
    raw: bytes
    uid: Optional[int] = None
    internal_date: Optional[datetime] = None
    from_addrs: List[str] = field(default_factory=list)
    to_addrs: List[str] = field(default_factory=list)
    subject: str = ""


def flatten_mailboxes(nodes: Iterable[MailboxNode]) -> List[MailboxNode]:
    """Return ``nodes`` and their descendants, parents before children."""
    flat: List[MailboxNode] = []
    for node in nodes:
        flat.append(node)
        flat.extend(flatten_mailboxes(node.children))
    return flat


class MailboxClient(ABC):
    """Abstract base class for a single mail server connection.

    Every method may raise :class:`~mail_indexer.core.exceptions.ConnectionFailure`
    when the connection is lost.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the connection and authenticate."""

    @abstractmethod
    def list_mailboxes(self) -> List[MailboxNode]:
        """Return the top level of the folder hierarchy."""

    @abstractmethod
    def open_mailbox(self, name: str, readonly: bool = True) -> int:
        """Select ``name`` and return its current message count."""

    @abstractmethod
    def search_since(self, since: datetime) -> List[int]:
        """Return sequence numbers of messages with an internal date on or after ``since``."""

    @abstractmethod
    def fetch(self, seqs: Sequence[int]) -> Iterable[FetchedMessage]:
        """Fetch envelope, raw source and internal date of each message.

        Parameters
        ----------
        seqs:
            Sequence numbers in the currently selected mailbox.
        """

    @abstractmethod
    def wait_for_exists(self, timeout: float) -> List[int]:
        """Block up to ``timeout`` seconds for new-message notifications.

        Returns the message totals reported by the server, in the order they
        arrived. An empty list means nothing happened.
        """

    @abstractmethod
    def noop(self) -> None:
        """Keep the connection alive."""

    @abstractmethod
    def logout(self) -> None:
        """Close the connection."""

"""
Core data models for the Mail Indexer.

This module contains the dataclasses shared by the data layer, the account
workers and the web routes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union


class WorkerState(str, Enum):
    """Lifecycle states of an account worker."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ENUMERATING = "enumerating"
    LISTENING = "listening"
    RECONNECTING = "reconnecting"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Account:
    """
    A configured mail source.

    Attributes:
        id: Numeric account identity
        name: Human readable account name
        host: IMAP server host name
        port: IMAP server port
        secure: Whether the connection uses implicit TLS
        username: Login name
        password: Encrypted token, or legacy plaintext for old rows
        enabled: Whether a worker should run for this account
        created_at: When the account was created
    """
    id: int
    name: str
    host: str
    port: int
    username: str
    password: str
    secure: bool = True
    enabled: bool = True
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Account":
        """Build an account from a database row (``RealDictCursor`` style)."""
        return cls(
            id=int(row["id"]),
            name=row["name"],
            host=row["host"],
            port=int(row["port"]),
            username=row["username"],
            password=row.get("password") or "",
            secure=bool(row.get("secure", True)),
            enabled=bool(row.get("enabled", True)),
            created_at=row.get("created_at"),
        )

    def to_dict(self, include_password: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "secure": self.secure,
            "username": self.username,
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_password:
            data["password"] = self.password
        return data


@dataclass
class EmailDocument:
    """
    An indexed email message.

    The document identity is derived from ``account_id`` and ``message_id``
    so re-indexing the same message overwrites the stored copy.
    """
    message_id: str
    account_id: Union[int, str]
    folder: str
    from_addr: str = ""
    to_addrs: str = ""
    subject: str = ""
    body_text: str = ""
    body_html: str = ""
    received_at: Optional[datetime] = None
    labels: List[str] = field(default_factory=list)
    raw: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "account_id": self.account_id,
            "folder": self.folder,
            "from_addr": self.from_addr,
            "to_addrs": self.to_addrs,
            "subject": self.subject,
            "body_text": self.body_text,
            "body_html": self.body_html,
            "received_at": self.received_at.isoformat() if self.received_at else None,
            "labels": list(self.labels),
            "raw": self.raw,
        }

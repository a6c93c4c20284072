"""IMAP mailbox client implementation.

This module provides the :class:`IMAPConnector`, an ``imapclient``-backed
:class:`MailboxClient`. It works with sequence numbers rather than UIDs so the
totals reported by IDLE ``EXISTS`` responses can be fetched directly.

When ``secure`` is ``False`` the connector upgrades the connection using
``STARTTLS`` to avoid sending credentials in plaintext, unless that requirement
is switched off.
"""

from __future__ import annotations

import logging
import socket
import ssl
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from imapclient import IMAPClient
from imapclient.exceptions import CapabilityError, IMAPClientAbortError, IMAPClientError

from mail_indexer.core.exceptions import CapabilityUnsupported, ConnectionFailure, MailboxCommandError

from ..parser import decode_header_value
from .base import FetchedMessage, MailboxClient, MailboxNode

logger = logging.getLogger(__name__)

FETCH_ITEMS = ["ENVELOPE", "BODY.PEEK[]", "INTERNALDATE", "UID"]

# Errors that leave the connection unusable
_TRANSPORT_ERRORS = (IMAPClientAbortError, socket.error, OSError)
# Any failure while connecting or logging in
_CONNECT_ERRORS = (IMAPClientError, socket.error, OSError)


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _format_addresses(addresses: Optional[Iterable[Any]]) -> List[str]:
    result: List[str] = []
    for addr in addresses or ():
        mailbox = _to_str(getattr(addr, "mailbox", None))
        host = _to_str(getattr(addr, "host", None))
        if mailbox and host:
            result.append(f"{mailbox}@{host}".lower())
        elif mailbox:
            result.append(mailbox.lower())
    return result


def _exists_totals(responses: Iterable[Any]) -> List[int]:
    # IDLE responses look like: [(3, b'EXISTS'), (1, b'RECENT')]
    totals: List[int] = []
    for response in responses or ():
        if isinstance(response, (tuple, list)) and len(response) >= 2:
            indicator = response[1]
            if isinstance(indicator, bytes):
                indicator = indicator.decode("ascii", errors="ignore")
            if isinstance(indicator, str) and indicator.upper() == "EXISTS":
                try:
                    totals.append(int(response[0]))
                except (TypeError, ValueError):
                    continue
    return totals


class IMAPConnector(MailboxClient):
    """Talk to one IMAP account through ``imapclient``."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        port: int = 993,
        secure: bool = True,
        require_starttls: bool = True,
        timeout: Optional[float] = 60,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.secure = secure
        self.require_starttls = require_starttls
        self.timeout = timeout
        self.client: Optional[IMAPClient] = None

    # ------------------------------------------------------------------
    def connect(self) -> None:
        logger.info(
            "Connecting to IMAP server %s:%s secure=%s user=%s",
            self.host,
            self.port,
            self.secure,
            self.username,
        )
        try:
            client = IMAPClient(
                self.host,
                port=self.port,
                use_uid=False,
                ssl=self.secure,
                timeout=self.timeout,
            )
        except _CONNECT_ERRORS as exc:
            raise ConnectionFailure(f"Could not reach {self.host}:{self.port}: {exc}") from exc

        try:
            if not self.secure and self.require_starttls:
                try:
                    client.starttls(ssl.create_default_context())
                except _CONNECT_ERRORS as exc:
                    raise ConnectionFailure(
                        "IMAP server requires a secure connection; STARTTLS negotiation failed"
                    ) from exc
            client.login(self.username, self.password)
        except ConnectionFailure:
            self._shutdown(client)
            raise
        except _CONNECT_ERRORS as exc:
            self._shutdown(client)
            raise ConnectionFailure(f"IMAP login failed for {self.username}: {exc}") from exc

        self.client = client
        logger.info("Connected to %s as %s", self.host, self.username)

    # ------------------------------------------------------------------
    def list_mailboxes(self) -> List[MailboxNode]:
        folders = self._call("list_folders")
        roots: List[MailboxNode] = []
        by_name: Dict[str, MailboxNode] = {}
        entries: List[Tuple[str, Optional[str], bool]] = []
        for flags, delimiter, name in folders:
            flag_names = {_to_str(flag).lower() for flag in flags or ()}
            selectable = "\\noselect" not in flag_names and "\\nonexistent" not in flag_names
            entries.append((_to_str(name), _to_str(delimiter) or None, selectable))

        # Parents sort before their children, so a parent is always known first
        for name, delimiter, selectable in sorted(entries, key=lambda e: e[0]):
            node = MailboxNode(name=name, selectable=selectable)
            by_name[name] = node
            parent = None
            if delimiter and delimiter in name:
                parent = by_name.get(name.rsplit(delimiter, 1)[0])
            if parent is not None:
                parent.children.append(node)
            else:
                roots.append(node)
        return roots

    def open_mailbox(self, name: str, readonly: bool = True) -> int:
        info = self._call("select_folder", name, readonly=readonly)
        return int(info.get(b"EXISTS", 0) or 0)

    def search_since(self, since: datetime) -> List[int]:
        return [int(seq) for seq in self._call("search", ["SINCE", since.date()])]

    def fetch(self, seqs: Sequence[int]) -> Iterable[FetchedMessage]:
        if not seqs:
            return []
        response = self._call("fetch", list(seqs), FETCH_ITEMS)
        messages: List[FetchedMessage] = []
        for seq in sorted(response):
            data = response[seq]
            envelope = data.get(b"ENVELOPE")
            subject = ""
            if envelope is not None and envelope.subject:
                subject = decode_header_value(_to_str(envelope.subject)) or ""
            messages.append(
                FetchedMessage(
                    seq=int(seq),
                    uid=data.get(b"UID"),
                    raw=data.get(b"BODY[]") or b"",
                    internal_date=data.get(b"INTERNALDATE"),
                    from_addrs=_format_addresses(getattr(envelope, "from_", None)),
                    to_addrs=_format_addresses(getattr(envelope, "to", None)),
                    subject=subject,
                )
            )
        return messages

    def wait_for_exists(self, timeout: float) -> List[int]:
        self._call("idle")
        try:
            responses = self._call("idle_check", timeout=timeout)
        finally:
            done = self._call("idle_done")
        trailing = done[1] if isinstance(done, tuple) and len(done) > 1 else []
        return _exists_totals(list(responses or []) + list(trailing or []))

    def noop(self) -> None:
        self._call("noop")

    def logout(self) -> None:
        client, self.client = self.client, None
        if client is None:
            return
        try:
            client.logout()
        except _CONNECT_ERRORS as exc:
            raise ConnectionFailure(f"Error during IMAP logout: {exc}") from exc

    # ------------------------------------------------------------------
    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        if self.client is None:
            raise ConnectionFailure("IMAP connection is closed")
        try:
            return getattr(self.client, method)(*args, **kwargs)
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionFailure(f"IMAP {method} failed: {exc}") from exc
        except CapabilityError as exc:
            raise CapabilityUnsupported(f"IMAP {method} unsupported by {self.host}: {exc}") from exc
        except IMAPClientError as exc:
            raise MailboxCommandError(f"IMAP {method} rejected: {exc}") from exc

    @staticmethod
    def _shutdown(client: IMAPClient) -> None:
        try:
            client.shutdown()
        except _CONNECT_ERRORS as exc:
            logger.debug("Error closing IMAP socket: %s", exc)

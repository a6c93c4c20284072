"""Tests for the :class:`IMAPConnector`."""

from __future__ import annotations

import os
import sys
from datetime import date, datetime, timezone
from types import SimpleNamespace
from typing import Any, List

import pytest

# Ensure project root on path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from imapclient.exceptions import CapabilityError, IMAPClientAbortError, IMAPClientError, LoginError

from ingestion.email.connectors import imap_connector
from ingestion.email.connectors.imap_connector import IMAPConnector
from mail_indexer.core.exceptions import CapabilityUnsupported, ConnectionFailure, MailboxCommandError


class DummyIMAPClient:
    """Simple IMAPClient stub that records method calls."""

    instances: List["DummyIMAPClient"] = []

    def __init__(self, host: str, port: int = None, **kwargs: Any) -> None:
        self.host = host
        self.port = port
        self.kwargs = kwargs
        self.calls: List[str] = []
        self.folders: List[tuple] = []
        self.fetch_response: dict = {}
        self.idle_responses: List[tuple] = []
        self.done_responses: List[tuple] = []
        self.search_args: Any = None
        DummyIMAPClient.instances.append(self)

    def starttls(self, *_: Any, **__: Any) -> None:
        self.calls.append("starttls")

    def login(self, *_: Any, **__: Any) -> None:
        self.calls.append("login")

    def list_folders(self) -> List[tuple]:
        return self.folders

    def select_folder(self, name: str, readonly: bool = False) -> dict:
        self.calls.append(f"select:{name}:{readonly}")
        return {b"EXISTS": 5}

    def search(self, criteria: Any) -> List[int]:
        self.search_args = criteria
        return [3, 4]

    def fetch(self, messages: Any, data: Any) -> dict:
        self.calls.append(f"fetch:{list(messages)}")
        return self.fetch_response

    def idle(self) -> None:
        self.calls.append("idle")

    def idle_check(self, timeout: float = None) -> List[tuple]:
        return self.idle_responses

    def idle_done(self) -> tuple:
        self.calls.append("idle_done")
        return (b"IDLE terminated", self.done_responses)

    def noop(self) -> tuple:
        return (b"NOOP completed", [])

    def logout(self) -> None:
        self.calls.append("logout")

    def shutdown(self) -> None:
        self.calls.append("shutdown")


class DummyIMAPClientStartTLSFail(DummyIMAPClient):
    """IMAPClient stub whose ``starttls`` call fails."""

    def starttls(self, *_: Any, **__: Any) -> None:
        raise IMAPClientError("STARTTLS not supported")


class DummyIMAPClientLoginFail(DummyIMAPClient):
    def login(self, *_: Any, **__: Any) -> None:
        raise LoginError("AUTHENTICATIONFAILED")


@pytest.fixture(autouse=True)
def reset_instances() -> None:
    DummyIMAPClient.instances = []


@pytest.fixture
def patch_imap(monkeypatch: pytest.MonkeyPatch) -> None:
    """Patch ``IMAPClient`` to use a dummy implementation."""
    monkeypatch.setattr(imap_connector, "IMAPClient", DummyIMAPClient)


def connected(secure: bool = True) -> IMAPConnector:
    connector = IMAPConnector(host="host", username="user", password="pw", port=993, secure=secure)
    connector.connect()
    return connector


def test_imap_connector_uses_starttls(patch_imap: None) -> None:
    """Connector should upgrade plain connections using ``STARTTLS``."""
    connected(secure=False)
    dummy = DummyIMAPClient.instances[0]
    assert dummy.kwargs["ssl"] is False
    assert dummy.kwargs["use_uid"] is False
    assert dummy.calls.index("starttls") < dummy.calls.index("login")


def test_imap_connector_secure_skips_starttls(patch_imap: None) -> None:
    connected(secure=True)
    dummy = DummyIMAPClient.instances[0]
    assert dummy.kwargs["ssl"] is True
    assert "starttls" not in dummy.calls


def test_imap_connector_starttls_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    """A failing ``STARTTLS`` handshake should raise ``ConnectionFailure``."""
    monkeypatch.setattr(imap_connector, "IMAPClient", DummyIMAPClientStartTLSFail)
    connector = IMAPConnector(host="host", username="user", password="pw", port=143, secure=False)
    with pytest.raises(ConnectionFailure):
        connector.connect()
    assert "login" not in DummyIMAPClient.instances[0].calls
    assert "shutdown" in DummyIMAPClient.instances[0].calls


def test_imap_connector_login_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(imap_connector, "IMAPClient", DummyIMAPClientLoginFail)
    connector = IMAPConnector(host="host", username="user", password="bad")
    with pytest.raises(ConnectionFailure):
        connector.connect()
    assert connector.client is None


def test_list_mailboxes_builds_hierarchy(patch_imap: None) -> None:
    connector = connected()
    DummyIMAPClient.instances[0].folders = [
        ((b"\\HasChildren", b"\\Noselect"), b"/", "[Gmail]"),
        ((b"\\HasNoChildren",), b"/", "[Gmail]/Sent Mail"),
        ((b"\\HasNoChildren",), b"/", "INBOX"),
    ]

    roots = connector.list_mailboxes()

    assert [node.name for node in roots] == ["INBOX", "[Gmail]"]
    gmail = roots[1]
    assert gmail.selectable is False
    assert [child.name for child in gmail.children] == ["[Gmail]/Sent Mail"]
    assert gmail.children[0].selectable is True


def test_open_and_search(patch_imap: None) -> None:
    connector = connected()
    assert connector.open_mailbox("INBOX", readonly=True) == 5
    assert connector.search_since(datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)) == [3, 4]
    dummy = DummyIMAPClient.instances[0]
    assert "select:INBOX:True" in dummy.calls
    assert dummy.search_args == ["SINCE", date(2024, 3, 10)]


def test_fetch_maps_envelope(patch_imap: None) -> None:
    connector = connected()
    received = datetime(2024, 3, 10, 8, 30)
    envelope = SimpleNamespace(
        subject=b"=?utf-8?q?Caf=C3=A9?=",
        from_=(SimpleNamespace(name=b"Alice", mailbox=b"Alice", host=b"Example.com"),),
        to=(SimpleNamespace(name=None, mailbox=b"me", host=b"example.org"),),
    )
    DummyIMAPClient.instances[0].fetch_response = {
        3: {b"ENVELOPE": envelope, b"BODY[]": b"raw message", b"INTERNALDATE": received, b"UID": 42, b"SEQ": 3},
    }

    messages = list(connector.fetch([3]))

    assert len(messages) == 1
    message = messages[0]
    assert message.seq == 3
    assert message.uid == 42
    assert message.raw == b"raw message"
    assert message.internal_date == received
    assert message.from_addrs == ["alice@example.com"]
    assert message.to_addrs == ["me@example.org"]
    assert message.subject == "Café"


def test_fetch_nothing_skips_server(patch_imap: None) -> None:
    connector = connected()
    assert list(connector.fetch([])) == []
    assert not any(call.startswith("fetch") for call in DummyIMAPClient.instances[0].calls)


def test_wait_for_exists_collects_totals(patch_imap: None) -> None:
    connector = connected()
    dummy = DummyIMAPClient.instances[0]
    dummy.idle_responses = [(7, b"EXISTS"), (1, b"RECENT")]
    dummy.done_responses = [(8, b"EXISTS")]

    assert connector.wait_for_exists(0.1) == [7, 8]
    assert dummy.calls.index("idle") < dummy.calls.index("idle_done")


def test_abort_maps_to_connection_failure(patch_imap: None, monkeypatch: pytest.MonkeyPatch) -> None:
    connector = connected()

    def broken_noop() -> None:
        raise IMAPClientAbortError("socket closed")

    monkeypatch.setattr(DummyIMAPClient.instances[0], "noop", broken_noop)
    with pytest.raises(ConnectionFailure):
        connector.noop()


def test_rejected_command_maps_to_mailbox_error(patch_imap: None, monkeypatch: pytest.MonkeyPatch) -> None:
    connector = connected()

    def broken_select(name: str, readonly: bool = False) -> dict:
        raise IMAPClientError("NO [NONEXISTENT] Unknown Mailbox")

    monkeypatch.setattr(DummyIMAPClient.instances[0], "select_folder", broken_select)
    with pytest.raises(MailboxCommandError):
        connector.open_mailbox("Missing")


def test_calls_before_connect_fail(patch_imap: None) -> None:
    connector = IMAPConnector(host="host", username="user", password="pw")
    with pytest.raises(ConnectionFailure):
        connector.noop()


def test_logout_closes_once(patch_imap: None) -> None:
    connector = connected()
    connector.logout()
    connector.logout()
    assert DummyIMAPClient.instances[0].calls.count("logout") == 1


def test_missing_idle_capability_maps_to_capability_error(patch_imap: None, monkeypatch: pytest.MonkeyPatch) -> None:
    connector = connected()
    dummy = DummyIMAPClient.instances[0]

    def no_idle() -> None:
        raise CapabilityError("Server does not support IDLE capability")

    monkeypatch.setattr(dummy, "idle", no_idle)
    with pytest.raises(CapabilityUnsupported):
        connector.wait_for_exists(0.1)
    assert "idle_done" not in dummy.calls

"""Tests for the email index gateway and document identity."""

from __future__ import annotations

import base64
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from mail_indexer.core.exceptions import IndexFailure
from mail_indexer.core.models import EmailDocument
from mail_indexer.data.email_data import EmailIndexGateway, document_id


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, query: Any, params: Any = ()) -> None:
        self.conn.executed.append((query, params))
        if self.conn.fail:
            raise RuntimeError("database unavailable")

    def fetchone(self) -> Optional[dict]:
        return self.conn.results.pop(0) if self.conn.results else None

    def fetchall(self) -> List[dict]:
        rows, self.conn.results = self.conn.results, []
        return rows


class FakeConnection:
    def __init__(self) -> None:
        self.executed: List[Any] = []
        self.results: List[Any] = []
        self.fail = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        pass


class FakePostgresManager:
    def __init__(self) -> None:
        self.conn = FakeConnection()

    @contextmanager
    def get_connection(self):
        yield self.conn


@pytest.fixture
def postgres() -> FakePostgresManager:
    return FakePostgresManager()


@pytest.fixture
def gateway(postgres: FakePostgresManager) -> EmailIndexGateway:
    return EmailIndexGateway(postgres, "emails_v1")


def _document(message_id: str = "<abc@example.com>") -> EmailDocument:
    return EmailDocument(
        message_id=message_id,
        account_id=7,
        folder="INBOX",
        subject="Hello",
        received_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def test_document_id_is_deterministic_unpadded_urlsafe() -> None:
    expected = base64.urlsafe_b64encode(b"<abc@example.com>").rstrip(b"=").decode("ascii")
    assert document_id(7, "<abc@example.com>") == f"7_{expected}"
    assert document_id("7", "<abc@example.com>") == document_id(7, "<abc@example.com>")
    assert "=" not in document_id(7, "<abc@example.com>")


def test_document_id_uses_url_safe_alphabet() -> None:
    # b"???" encodes to "Pz8/" in the standard alphabet
    assert document_id(1, "???") == "1_Pz8_"


def test_empty_message_id_gets_placeholder() -> None:
    doc_id = document_id(1, "")
    assert doc_id.startswith("1_")
    encoded = doc_id[2:]
    decoded = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode("utf-8")
    assert decoded and "-" in decoded


def test_exists_true_when_row_found(gateway: EmailIndexGateway, postgres: FakePostgresManager) -> None:
    postgres.conn.results = [{"found": 1}]
    assert gateway.exists(7, "<abc@example.com>") is True
    _, params = postgres.conn.executed[-1]
    assert params == (document_id(7, "<abc@example.com>"),)


def test_exists_false_when_absent(gateway: EmailIndexGateway) -> None:
    assert gateway.exists(7, "<abc@example.com>") is False


def test_exists_failure_counts_as_not_found(gateway: EmailIndexGateway, postgres: FakePostgresManager) -> None:
    postgres.conn.fail = True
    assert gateway.exists(7, "<abc@example.com>") is False


def test_upsert_writes_at_computed_identity(gateway: EmailIndexGateway, postgres: FakePostgresManager) -> None:
    doc_id = gateway.upsert(_document())
    assert doc_id == document_id(7, "<abc@example.com>")
    _, params = postgres.conn.executed[-1]
    assert params[0] == doc_id
    assert params[1] == "<abc@example.com>"
    assert params[2] == "7"
    assert params[10] == []


def test_upsert_twice_targets_same_identity(gateway: EmailIndexGateway, postgres: FakePostgresManager) -> None:
    first = gateway.upsert(_document())
    second = gateway.upsert(_document())
    assert first == second
    assert postgres.conn.executed[-1][1][0] == postgres.conn.executed[-2][1][0]


def test_upsert_failure_raises_index_failure(gateway: EmailIndexGateway, postgres: FakePostgresManager) -> None:
    postgres.conn.fail = True
    with pytest.raises(IndexFailure):
        gateway.upsert(_document())


def test_ensure_index_when_present(gateway: EmailIndexGateway, postgres: FakePostgresManager, caplog) -> None:
    postgres.conn.results = [{"regclass": "emails_v1"}]
    with caplog.at_level("INFO"):
        assert gateway.ensure_index() is False
    assert len(postgres.conn.executed) == 1
    assert "exists" in caplog.text


def test_ensure_index_creates_table_and_indexes(gateway: EmailIndexGateway, postgres: FakePostgresManager, caplog) -> None:
    postgres.conn.results = [{"regclass": None}]
    with caplog.at_level("INFO"):
        assert gateway.ensure_index() is True
    # lookup, table, then account/folder/received/labels/fts indexes
    assert len(postgres.conn.executed) == 7
    assert "created" in caplog.text


def test_ensure_index_failure_propagates(gateway: EmailIndexGateway, postgres: FakePostgresManager) -> None:
    postgres.conn.fail = True
    with pytest.raises(RuntimeError):
        gateway.ensure_index()


def test_get_returns_json_ready_document(gateway: EmailIndexGateway, postgres: FakePostgresManager) -> None:
    postgres.conn.results = [{
        "doc_id": "7_abc",
        "message_id": "<abc@example.com>",
        "account_id": "7",
        "folder": "INBOX",
        "received_at": datetime(2024, 5, 1, tzinfo=timezone.utc),
        "labels": None,
    }]
    doc = gateway.get("7_abc")
    assert doc["received_at"] == "2024-05-01T00:00:00+00:00"
    assert doc["labels"] == []
    assert doc["folder"] == "INBOX"


def test_get_missing_returns_none(gateway: EmailIndexGateway) -> None:
    assert gateway.get("7_missing") is None

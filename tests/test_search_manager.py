"""Tests for the email search manager."""

from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, List

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from retrieval.email.search_manager import EmailSearchManager


class RecordingCursor:
    def __init__(self, owner: "RecordingPostgres") -> None:
        self.owner = owner

    def __enter__(self) -> "RecordingCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, query: Any, params: Any = None) -> None:
        self.owner.executed.append((query, list(params or [])))

    def fetchall(self) -> List[dict]:
        return self.owner.rows


class RecordingPostgres:
    def __init__(self, rows: List[dict] = None) -> None:
        self.rows = rows or []
        self.executed: List[tuple] = []

    @contextmanager
    def get_connection(self):
        owner = self

        class _Conn:
            def cursor(self):
                return RecordingCursor(owner)

        yield _Conn()


def _row(doc_id: str, total: int) -> dict:
    return {
        "doc_id": doc_id,
        "message_id": "<m@example.com>",
        "account_id": "1",
        "folder": "INBOX",
        "subject": "Quarterly report",
        "received_at": datetime(2024, 2, 1, tzinfo=timezone.utc),
        "labels": ["work"],
        "total_count": total,
    }


def test_search_returns_total_and_hits_with_id() -> None:
    postgres = RecordingPostgres([_row("1_a", 12), _row("1_b", 12)])
    manager = EmailSearchManager(postgres)

    result = manager.search(q="report", size=2)

    assert result["total"] == 12
    assert [hit["id"] for hit in result["hits"]] == ["1_a", "1_b"]
    assert result["hits"][0]["received_at"] == "2024-02-01T00:00:00+00:00"
    assert "total_count" not in result["hits"][0]


def test_search_passes_filters_in_order() -> None:
    postgres = RecordingPostgres()
    manager = EmailSearchManager(postgres)
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    end = datetime(2024, 1, 31, tzinfo=timezone.utc)

    result = manager.search(
        q="invoice", account="3", folder="Archive", label="billing",
        from_date=start, to_date=end, size=10,
    )

    assert result == {"total": 0, "hits": []}
    _, params = postgres.executed[0]
    # filters, then the ranking query text, then the limit
    assert params == ["invoice", "3", "Archive", "billing", start, end, "invoice", 10]


def test_search_without_query_skips_text_params() -> None:
    postgres = RecordingPostgres()
    EmailSearchManager(postgres).search(account="3")
    _, params = postgres.executed[0]
    assert params == ["3", 50]


def test_size_is_clamped() -> None:
    manager = EmailSearchManager(RecordingPostgres(), default_size=50, max_size=100)
    assert manager.clamp_size(None) == 50
    assert manager.clamp_size(0) == 50
    assert manager.clamp_size(20) == 20
    assert manager.clamp_size(1000) == 100

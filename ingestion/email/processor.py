"""Email processing pipeline.

This module defines :class:`MessageIndexer`, which turns a fetched message
into an :class:`EmailDocument` and stores it through the index gateway:

    parse -> resolve identity -> dedup check -> build document -> upsert

Backfill and live notifications share this path. Index store failures are
reported through the returned :class:`IndexOutcome` rather than raised.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from mail_indexer.core.exceptions import IndexFailure
from mail_indexer.core.models import EmailDocument

from .connectors.base import FetchedMessage
from .identity import resolve_message_id
from .parser import ParsedEmail, parse_raw_email, raw_to_text

logger = logging.getLogger(__name__)


class IndexOutcome(str, Enum):
    INDEXED = "indexed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class MessageIndexer:
    """Index fetched messages, skipping ones already stored.

    Parameters
    ----------
    gateway : Any
        An :class:`~mail_indexer.data.email_data.EmailIndexGateway` or any
        object offering ``exists`` and ``upsert``.
    """

    def __init__(self, gateway: Any) -> None:
        self.gateway = gateway

    # ------------------------------------------------------------------
    def build_document(
        self,
        account_id: Union[int, str],
        folder: str,
        message: FetchedMessage,
        parsed: Optional[ParsedEmail] = None,
        message_id: Optional[str] = None,
    ) -> EmailDocument:
        raw_text = raw_to_text(message.raw)
        if parsed is None:
            parsed = parse_raw_email(message.raw)
        if message_id is None:
            message_id = resolve_message_id(parsed, raw_text)
        return EmailDocument(
            message_id=message_id,
            account_id=account_id,
            folder=folder,
            from_addr=", ".join(message.from_addrs),
            to_addrs=", ".join(message.to_addrs),
            subject=parsed.subject or message.subject or "",
            body_text=parsed.text or raw_text,
            body_html=parsed.html or "",
            received_at=message.internal_date or datetime.now(timezone.utc),
            labels=[],
            raw=raw_text,
        )

    # ------------------------------------------------------------------
    def index_message(
        self, account_id: Union[int, str], folder: str, message: FetchedMessage
    ) -> IndexOutcome:
        """Run the full pipeline for one message."""
        raw_text = raw_to_text(message.raw)
        parsed = parse_raw_email(message.raw)
        message_id = resolve_message_id(parsed, raw_text)

        if self.gateway.exists(account_id, message_id):
            logger.debug("Skipping already indexed message %s in %s", message_id, folder)
            return IndexOutcome.DUPLICATE

        document = self.build_document(account_id, folder, message, parsed, message_id)
        try:
            self.gateway.upsert(document)
        except IndexFailure as exc:
            logger.error(
                "Failed to index message %s (seq %s) in %s for account %s: %s",
                message_id,
                message.seq,
                folder,
                account_id,
                exc,
            )
            return IndexOutcome.FAILED

        logger.info("Indexed message %s in %s for account %s", message_id, folder, account_id)
        return IndexOutcome.INDEXED

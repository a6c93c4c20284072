"""Message identity resolution."""

from __future__ import annotations

import random
import re
import time
from typing import Optional

from .parser import ParsedEmail

_MESSAGE_ID_HEADER = re.compile(r"^\s*Message-ID:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


def _synthetic_message_id() -> str:
    return f"<generated-{int(time.time() * 1000)}-{random.random():.17f}>"


def resolve_message_id(parsed: Optional[ParsedEmail], raw_text: str) -> str:
    """Return the identity used to deduplicate a message.

    The parsed Message-ID wins. Otherwise the raw header block is scanned,
    and as a last resort a ``<generated-...>`` id is minted. Generated ids are
    not stable, so a message without any Message-ID is indexed again on the
    next backfill.
    """
    if parsed is not None and parsed.message_id:
        return parsed.message_id

    match = _MESSAGE_ID_HEADER.search(raw_text or "")
    if match:
        found = match.group(1).strip()
        if found:
            return found

    return _synthetic_message_id()

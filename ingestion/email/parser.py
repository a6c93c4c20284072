"""Raw message parsing.

Turns RFC 822 bytes into the handful of fields the index needs. Parsing never
raises: malformed input degrades to the raw text as body.
"""

from __future__ import annotations

import base64
import logging
import quopri
from dataclasses import dataclass
from email import message_from_bytes
from email.header import decode_header, make_header
from email.message import Message
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ParsedEmail:
    """Fields extracted from a raw message."""

    message_id: Optional[str] = None
    subject: str = ""
    text: str = ""
    html: str = ""


def raw_to_text(raw: Optional[Union[bytes, str]]) -> str:
    """Decode raw message bytes, falling back to latin-1 for invalid UTF-8."""
    if not raw:
        return ""
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def parse_raw_email(raw: Optional[Union[bytes, str]]) -> ParsedEmail:
    """Parse ``raw`` into a :class:`ParsedEmail`."""
    raw_bytes = raw.encode("utf-8", errors="replace") if isinstance(raw, str) else (raw or b"")
    try:
        msg = message_from_bytes(raw_bytes)
        text, html = _extract_bodies(msg)
        return ParsedEmail(
            message_id=(msg.get("Message-ID") or "").strip() or None,
            subject=decode_header_value(msg.get("Subject")) or "",
            text=text or "",
            html=html or "",
        )
    except Exception as exc:  # parser must degrade, not raise
        logger.warning("Failed to parse message, using raw text: %s", exc)
        return ParsedEmail(text=raw_to_text(raw_bytes))


# ------------------------------------------------------------------
def _extract_bodies(msg: Message) -> tuple[Optional[str], Optional[str]]:
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    if not msg.is_multipart():
        decoded = _decode_part(msg)
        if msg.get_content_type() == "text/html":
            return None, decoded
        return decoded, None

    for part in msg.walk():
        ctype = part.get_content_type()
        disp = (part.get("Content-Disposition") or "").lower()
        if "attachment" in disp:
            continue
        if ctype == "text/plain" and body_text is None:
            body_text = _decode_part(part)
        elif ctype == "text/html" and body_html is None:
            body_html = _decode_part(part)
    return body_text, body_html


# ------------------------------------------------------------------
def decode_header_value(raw_val: Optional[str]) -> Optional[str]:
    if not raw_val:
        return None
    try:
        return str(make_header(decode_header(raw_val))).strip()
    except Exception:
        parts = decode_header(raw_val)
        decoded: List[str] = []
        for text, enc in parts:
            if isinstance(text, bytes):
                try:
                    decoded.append(text.decode(enc or "utf-8", errors="ignore"))
                except LookupError:
                    decoded.append(text.decode("utf-8", errors="ignore"))
            else:
                decoded.append(text)
        return "".join(decoded).strip()


# ------------------------------------------------------------------
def _decode_part(part: Message) -> Optional[str]:
    charset = part.get_content_charset() or "utf-8"
    payload = part.get_payload(decode=True)
    if not payload:
        return None
    try:
        return payload.decode(charset, errors="ignore")
    except LookupError:
        try:
            return quopri.decodestring(payload).decode("utf-8", errors="ignore")
        except ValueError:
            try:
                return base64.b64decode(payload).decode("utf-8", errors="ignore")
            except ValueError:
                return payload.decode("utf-8", errors="ignore")

"""Tests for message identity resolution and raw message parsing."""

from __future__ import annotations

import os
import re
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingestion.email.identity import resolve_message_id
from ingestion.email.parser import ParsedEmail, parse_raw_email, raw_to_text

GENERATED = re.compile(r"^<generated-\d+-[\d.]+>$")


def test_parsed_message_id_is_used_verbatim() -> None:
    parsed = ParsedEmail(message_id="<abc@example.com>")
    assert resolve_message_id(parsed, "Message-ID: <other@example.com>") == "<abc@example.com>"


def test_raw_header_is_used_when_parse_has_no_id() -> None:
    raw = "Subject: hi\r\n   message-id:   <raw@example.com>  \r\nFrom: a@b.c\r\n\r\nbody"
    assert resolve_message_id(ParsedEmail(), raw) == "<raw@example.com>"


def test_raw_header_is_used_without_parse_result() -> None:
    assert resolve_message_id(None, "MESSAGE-ID: <x@y>\n") == "<x@y>"


def test_header_must_start_a_line() -> None:
    raw = "Subject: see Message-ID: <inline@example.com>\r\n\r\nbody"
    assert GENERATED.match(resolve_message_id(ParsedEmail(), raw))


def test_synthetic_ids_are_distinct() -> None:
    first = resolve_message_id(ParsedEmail(), "Subject: no id\r\n\r\nbody")
    second = resolve_message_id(ParsedEmail(), "Subject: no id\r\n\r\nbody")
    assert GENERATED.match(first)
    assert GENERATED.match(second)
    assert first != second


def test_parse_multipart_message() -> None:
    raw = (
        b"Message-ID:  <multi@example.com> \r\n"
        b"Subject: =?utf-8?b?SGVsbG8gV29ybGQ=?=\r\n"
        b"MIME-Version: 1.0\r\n"
        b'Content-Type: multipart/alternative; boundary="XYZ"\r\n'
        b"\r\n"
        b"--XYZ\r\n"
        b"Content-Type: text/plain; charset=utf-8\r\n\r\n"
        b"plain body\r\n"
        b"--XYZ\r\n"
        b"Content-Type: text/html; charset=utf-8\r\n\r\n"
        b"<p>html body</p>\r\n"
        b"--XYZ--\r\n"
    )
    parsed = parse_raw_email(raw)
    assert parsed.message_id == "<multi@example.com>"
    assert parsed.subject == "Hello World"
    assert "plain body" in parsed.text
    assert "<p>html body</p>" in parsed.html


def test_parse_html_only_message() -> None:
    raw = b"Subject: html\r\nContent-Type: text/html; charset=utf-8\r\n\r\n<b>bold</b>\r\n"
    parsed = parse_raw_email(raw)
    assert parsed.text == ""
    assert "<b>bold</b>" in parsed.html
    assert parsed.message_id is None


def test_parse_never_raises_on_garbage() -> None:
    parsed = parse_raw_email(b"\xff\xfe\x00garbage without headers")
    assert isinstance(parsed, ParsedEmail)
    assert parsed.message_id is None


def test_raw_to_text_falls_back_to_latin1() -> None:
    assert raw_to_text(b"caf\xe9") == "café"
    assert raw_to_text(b"caf\xc3\xa9") == "café"
    assert raw_to_text(b"") == ""

"""Utilities for parsing raw RFC822 messages into structured fields."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime

from ..core.datetime_utils import ensure_utc
from ..core.models import ParsedMessage

NO_SUBJECT = "(No Subject)"


class EmailParser:
    """Convert raw email payloads into :class:`ParsedMessage` records."""

    def __init__(self) -> None:
        """Prepare internal parser instance."""
        self._parser = BytesParser(policy=policy.default)

    def parse(self, payload: bytes) -> ParsedMessage:
        """Parse raw RFC822 bytes into a :class:`ParsedMessage`."""
        message = self._parser.parsebytes(payload)
        sender = _header_text(message, "From")
        recipient = _header_text(message, "To")
        subject = _header_text(message, "Subject") or NO_SUBJECT
        received_at = _try_parse_datetime(message.get("Date"))
        in_reply_to = _first_token(_header_text(message, "In-Reply-To"))

        body_text, body_html = _extract_bodies(message)
        body = body_text or body_html or ""

        message_id = _first_token(_header_text(message, "Message-ID"))
        if not message_id:
            message_id = synthesize_message_id(
                sender, recipient, subject, message.get("Date") or "", body
            )

        return ParsedMessage(
            message_id=message_id,
            sender=sender,
            recipient=recipient,
            subject=subject,
            body=body,
            html_body=body_html,
            in_reply_to=in_reply_to,
            received_at=received_at,
        )


def synthesize_message_id(*parts: str) -> str:
    """Derive a stable identifier for messages that lack a Message-ID header."""
    digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()
    return f"<{digest[:32]}@synthesized.invalid>"


def _header_text(message: EmailMessage, name: str) -> str:
    value = message.get(name)
    if value is None:
        return ""
    return str(value).strip()


def _first_token(value: str) -> str | None:
    tokens = value.split()
    return tokens[0] if tokens else None


def _collapse_chunks(chunks: Iterable[str], separator: str) -> str | None:
    filtered_chunks = [chunk for chunk in chunks if chunk]
    if not filtered_chunks:
        return None
    return separator.join(filtered_chunks)


def _extract_bodies(message: EmailMessage) -> tuple[str | None, str | None]:
    plain_chunks: list[str] = []
    html_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type not in ("text/plain", "text/html"):
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            continue
        if not isinstance(content_obj, str):
            continue
        content = content_obj.strip()
        if content_type == "text/plain":
            plain_chunks.append(content)
        else:
            html_chunks.append(content)

    text = _collapse_chunks(plain_chunks, "\n\n")
    html = _collapse_chunks(html_chunks, "\n")
    return text, html


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(str(header_value)))
    except (TypeError, ValueError):
        return None


__all__ = ["EmailParser", "NO_SUBJECT", "synthesize_message_id"]

"""Fetch matching messages and store the ones not seen before."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Protocol

from ..core.datetime_utils import utc_now
from ..core.errors import PersistenceError, ProtocolError
from ..core.interfaces import MailboxSession, MessageRepository
from ..core.models import FetchReport, MessageStatus, ParsedMessage, StoredMessage
from ..mailbox.search import UNSEEN_MESSAGES, SearchKey, compile_criteria
from .parser import EmailParser

LOGGER = logging.getLogger(__name__)


class EmailParserProtocol(Protocol):
    """Minimal protocol implemented by email parsers."""

    def parse(self, payload: bytes) -> ParsedMessage:
        """Convert raw RFC822 payload into structured fields."""
        raise NotImplementedError


class FetchPipeline:
    """Search a folder, parse each match and insert unseen message IDs.

    Messages are handled one at a time: each one is fetched, parsed,
    checked against the store and persisted before the next is fetched.
    A failure on one message is logged and skipped; only session-level
    errors (network loss, timeout) escape :meth:`run`.
    """

    def __init__(
        self,
        repository: MessageRepository,
        parser: EmailParserProtocol | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        progress_callback: Callable[[str], None] | None = None,
    ) -> None:
        """Initialise the pipeline with storage and an optional parser."""
        self._repository = repository
        self._parser = parser or EmailParser()
        self._clock = clock
        self._progress_callback = progress_callback

    def run(
        self,
        session: MailboxSession,
        owner_id: str,
        *,
        folder: str = "INBOX",
        search_criteria: Sequence[SearchKey] | str | None = None,
        limit: int = 10,
    ) -> FetchReport:
        """Return a report whose ``stored`` list holds only new records."""
        if limit <= 0:
            raise ValueError("limit must be positive")

        criteria = compile_criteria(
            [UNSEEN_MESSAGES] if search_criteria is None else search_criteria
        )
        total = session.select_folder(folder)
        LOGGER.info("%s opened, total messages: %s", folder, total)

        uids = session.search(criteria)
        report = FetchReport(folder=folder, matched=len(uids))
        if not uids:
            LOGGER.info("No messages in %s match %s", folder, criteria)
            return report

        # SEARCH returns ascending arrival order; keep the newest matches.
        selected = uids[-limit:]
        report.selected = len(selected)
        LOGGER.info(
            "Found %s message(s) in %s, processing the latest %s",
            len(uids),
            folder,
            len(selected),
        )

        for uid in selected:
            record = self._reconcile_one(session, owner_id, uid, report)
            if record is not None:
                report.stored.append(record)

        LOGGER.info(
            "Fetch completed: stored=%s, duplicates=%s, failed=%s",
            len(report.stored),
            report.duplicates,
            report.failures,
        )
        return report

    def _reconcile_one(
        self,
        session: MailboxSession,
        owner_id: str,
        uid: bytes,
        report: FetchReport,
    ) -> StoredMessage | None:
        uid_text = uid.decode() if isinstance(uid, bytes) else str(uid)
        try:
            payload = session.fetch_message(uid)
        except ProtocolError as exc:
            LOGGER.warning("Failed to fetch UID %s: %s", uid_text, exc)
            report.failures += 1
            return None

        try:
            parsed = self._parser.parse(payload)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Failed to parse UID %s: %s", uid_text, exc)
            report.failures += 1
            return None

        if self._progress_callback:
            self._progress_callback(
                f"Processing UID {uid_text}: {parsed.subject} ({parsed.message_id})"
            )

        try:
            existing = self._repository.find_one(owner_id, parsed.message_id)
            if existing is not None:
                LOGGER.debug("Skipped duplicate %s", parsed.message_id)
                report.duplicates += 1
                return None
            stored = self._repository.insert(self._build_record(owner_id, parsed))
        except PersistenceError as exc:
            LOGGER.warning(
                "Failed to store message %s (UID %s): %s",
                parsed.message_id,
                uid_text,
                exc,
            )
            report.failures += 1
            return None

        LOGGER.debug("Saved new message %s: %s", stored.message_id, stored.subject)
        return stored

    def _build_record(self, owner_id: str, parsed: ParsedMessage) -> StoredMessage:
        return StoredMessage(
            owner_id=owner_id,
            message_id=parsed.message_id,
            sender=parsed.sender,
            recipient=parsed.recipient,
            subject=parsed.subject,
            body=parsed.body,
            html_body=parsed.html_body,
            in_reply_to=parsed.in_reply_to,
            status=MessageStatus.PENDING,
            received_at=parsed.received_at or self._clock(),
        )


__all__ = ["EmailParserProtocol", "FetchPipeline"]

"""Drafted, automatic and manual replies for stored messages."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from email.utils import parseaddr
from typing import Protocol

from ..core.config import AgentSettings, AppSettings
from ..core.datetime_utils import utc_now
from ..core.errors import MailError
from ..core.interfaces import ContentAnalyzer, MessageRepository
from ..core.models import MessageStatus, StoredMessage
from ..transport.smtp_client import OutgoingMessage, SendReceipt, SmtpClient
from .analysis import AnalysisError, ContentAnalysisService
from .llm import OllamaClient

LOGGER = logging.getLogger(__name__)

PENDING_BATCH_SIZE = 10

TEST_EMAIL_SUBJECT = "Inbox Triage - Test Email"
TEST_EMAIL_BODY = (
    "This is a test email from Inbox Triage.\n\n"
    "Outgoing mail is configured correctly, so replies can now be sent "
    "from the agent."
)


class MessageSender(Protocol):
    """Outbound delivery used by the workflow."""

    def send(self, message: OutgoingMessage) -> SendReceipt:
        """Submit ``message`` and return its receipt."""
        raise NotImplementedError


SenderFactory = Callable[[], AbstractContextManager[MessageSender]]


@dataclass(slots=True)
class AutoReplyReport:
    """Counts for one auto-reply run."""

    processed: int = 0
    replied: int = 0
    failed: int = 0


class AutoReplyWorkflow:
    """Analyse pending messages, draft a reply and send it.

    Each message moves ``pending -> processing -> replied`` or ends up
    ``failed``; one failing message never stops the rest of the batch.
    The same collaborators also serve one-off drafts, manual replies and
    the SMTP test message.
    """

    def __init__(
        self,
        repository: MessageRepository,
        analyzer: ContentAnalyzer,
        sender_factory: SenderFactory,
        settings: AgentSettings,
    ) -> None:
        """Wire the workflow to storage, analysis and delivery."""
        self._repository = repository
        self._analyzer = analyzer
        self._sender_factory = sender_factory
        self._settings = settings

    @classmethod
    def from_settings(
        cls, settings: AppSettings, repository: MessageRepository
    ) -> AutoReplyWorkflow:
        """Build the workflow on Ollama and SMTP as configured."""
        analyzer = ContentAnalysisService(
            OllamaClient(settings.llm), fallback_enabled=settings.llm.fallback_enabled
        )
        return cls(
            repository,
            analyzer,
            lambda: SmtpClient(settings.smtp),
            settings.agent,
        )

    @property
    def active(self) -> bool:
        """Whether the agent is enabled with automatic replies switched on."""
        return self._settings.enabled and self._settings.auto_reply

    def run(self, messages: Iterable[StoredMessage]) -> AutoReplyReport:
        """Reply to every pending message in ``messages``."""
        report = AutoReplyReport()
        if not self.active:
            LOGGER.debug("Auto-reply disabled; skipping")
            return report

        pending = [msg for msg in messages if msg.status is MessageStatus.PENDING]
        if not pending:
            return report

        LOGGER.info("Auto-replying to %s message(s)", len(pending))
        with self._sender_factory() as sender:
            for message in pending:
                report.processed += 1
                if self._reply(sender, message):
                    report.replied += 1
                else:
                    report.failed += 1

        LOGGER.info(
            "Auto-reply finished: replied=%s, failed=%s", report.replied, report.failed
        )
        return report

    def process_pending(
        self, owner_id: str, *, limit: int = PENDING_BATCH_SIZE
    ) -> AutoReplyReport:
        """Reply to up to ``limit`` messages still pending for ``owner_id``.

        Picks up messages an earlier run could not reach, such as those
        stored while the SMTP server was unavailable.
        """
        if not self.active:
            LOGGER.debug("Auto-reply disabled; leaving pending messages")
            return AutoReplyReport()
        pending = self._repository.list_messages(
            owner_id, status=MessageStatus.PENDING, limit=limit
        )
        return self.run(pending)

    def draft_for(self, message: StoredMessage) -> str:
        """Return a reply draft for ``message`` without sending or storing it."""
        return self._analyzer.draft_reply(
            message.sender, message.subject, message.body, self._settings.tone
        )

    def reply_to(self, message: StoredMessage, body: str) -> StoredMessage:
        """Send ``body`` as a reply to ``message`` and mark it replied."""
        with self._sender_factory() as sender:
            sender.send(_reply_message(message, body))
        message.status = MessageStatus.REPLIED
        message.ai_response = body
        message.replied_at = utc_now()
        self._repository.update(message)
        LOGGER.info("Manual reply sent for %s", message.message_id)
        return message

    def send_test_email(self, address: str) -> SendReceipt:
        """Send the fixed test message to ``address``."""
        with self._sender_factory() as sender:
            return sender.send(
                OutgoingMessage(
                    to=address, subject=TEST_EMAIL_SUBJECT, body=TEST_EMAIL_BODY
                )
            )

    def _reply(self, sender: MessageSender, message: StoredMessage) -> bool:
        message.status = MessageStatus.PROCESSING
        try:
            self._repository.update(message)
            analysis = self._analyzer.analyze(
                message.sender, message.subject, message.body
            )
            message.sentiment = analysis.sentiment
            message.category = analysis.category
            message.ai_response = self._analyzer.draft_reply(
                message.sender, message.subject, message.body, self._settings.tone
            )
            self._repository.update(message)

            sender.send(_reply_message(message, message.ai_response))
        except (MailError, AnalysisError) as exc:
            LOGGER.warning("Auto-reply failed for %s: %s", message.message_id, exc)
            message.status = MessageStatus.FAILED
            self._save_quietly(message)
            return False

        message.status = MessageStatus.REPLIED
        message.replied_at = utc_now()
        message.auto_reply = True
        self._save_quietly(message)
        return True

    def _save_quietly(self, message: StoredMessage) -> None:
        try:
            self._repository.update(message)
        except MailError as exc:
            LOGGER.error(
                "Could not record status %s for %s: %s",
                message.status.value,
                message.message_id,
                exc,
            )


def _reply_message(message: StoredMessage, body: str) -> OutgoingMessage:
    return OutgoingMessage(
        to=parseaddr(message.sender)[1] or message.sender,
        subject=_reply_subject(message.subject),
        body=body,
        in_reply_to=message.message_id,
        references=message.message_id,
    )


def _reply_subject(subject: str) -> str:
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


__all__ = [
    "AutoReplyReport",
    "AutoReplyWorkflow",
    "MessageSender",
    "PENDING_BATCH_SIZE",
    "SenderFactory",
    "TEST_EMAIL_SUBJECT",
]

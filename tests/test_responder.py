"""Tests for the auto-reply workflow."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import pytest

from inbox_triage.core.config import AgentSettings, AppSettings, StorageSettings
from inbox_triage.core.errors import NetworkError
from inbox_triage.core.models import ContentAnalysis, MessageStatus, StoredMessage
from inbox_triage.intelligence import AutoReplyWorkflow
from inbox_triage.intelligence.responder import TEST_EMAIL_SUBJECT
from inbox_triage.storage import SqliteMessageRepository
from inbox_triage.transport import OutgoingMessage, SendReceipt

OWNER = "me@example.com"


class StubAnalyzer:
    def __init__(self) -> None:
        self.tones: list[str] = []

    def analyze(self, sender: str, subject: str, body: str) -> ContentAnalysis:
        return ContentAnalysis(sentiment="positive", category="inquiry")

    def draft_reply(self, sender: str, subject: str, body: str, tone: str) -> str:
        self.tones.append(tone)
        return f"Reply to {subject}"


class RecordingSender:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[OutgoingMessage] = []
        self.fail_for = fail_for or set()

    def send(self, message: OutgoingMessage) -> SendReceipt:
        if message.in_reply_to in self.fail_for:
            raise NetworkError("SMTP server disconnected")
        self.sent.append(message)
        return SendReceipt(message_id=f"<sent-{len(self.sent)}@example.com>")


@pytest.fixture
def repository(tmp_path: Path):
    repo = SqliteMessageRepository(StorageSettings(db_path=tmp_path / "mail.db"))
    yield repo
    repo.close()


def _store(repository: SqliteMessageRepository, message_id: str, subject: str) -> StoredMessage:
    return repository.insert(
        StoredMessage(
            owner_id=OWNER,
            message_id=message_id,
            sender="Bob <bob@example.com>",
            recipient=OWNER,
            subject=subject,
            body="Can you help?",
        )
    )


def _workflow(repository, sender: RecordingSender, **agent) -> AutoReplyWorkflow:
    @contextmanager
    def factory():
        yield sender

    settings = AgentSettings(**({"enabled": True, "auto_reply": True} | agent))
    return AutoReplyWorkflow(repository, StubAnalyzer(), factory, settings)


def test_replies_and_marks_messages(repository: SqliteMessageRepository) -> None:
    message = _store(repository, "<q1@example.com>", "Question")
    sender = RecordingSender()

    report = _workflow(repository, sender, tone="friendly").run([message])

    assert (report.processed, report.replied, report.failed) == (1, 1, 0)
    outgoing = sender.sent[0]
    assert outgoing.to == "bob@example.com"
    assert outgoing.subject == "Re: Question"
    assert outgoing.in_reply_to == "<q1@example.com>"
    assert outgoing.references == "<q1@example.com>"
    stored = repository.find_one(OWNER, "<q1@example.com>")
    assert stored is not None
    assert stored.status is MessageStatus.REPLIED
    assert stored.auto_reply is True
    assert stored.replied_at is not None
    assert stored.sentiment == "positive"
    assert stored.ai_response == "Reply to Question"


def test_send_failure_marks_only_that_message_failed(
    repository: SqliteMessageRepository,
) -> None:
    first = _store(repository, "<q1@example.com>", "Re: First")
    second = _store(repository, "<q2@example.com>", "Second")
    sender = RecordingSender(fail_for={"<q1@example.com>"})

    report = _workflow(repository, sender).run([first, second])

    assert (report.replied, report.failed) == (1, 1)
    assert repository.find_one(OWNER, "<q1@example.com>").status is MessageStatus.FAILED  # type: ignore[union-attr]
    assert repository.find_one(OWNER, "<q2@example.com>").status is MessageStatus.REPLIED  # type: ignore[union-attr]


def test_existing_reply_prefix_is_not_doubled(repository: SqliteMessageRepository) -> None:
    message = _store(repository, "<q1@example.com>", "RE: Ongoing")
    sender = RecordingSender()

    _workflow(repository, sender).run([message])

    assert sender.sent[0].subject == "RE: Ongoing"


def test_disabled_agent_does_nothing(repository: SqliteMessageRepository) -> None:
    message = _store(repository, "<q1@example.com>", "Question")
    sender = RecordingSender()

    report = _workflow(repository, sender, auto_reply=False).run([message])

    assert report.processed == 0
    assert sender.sent == []
    assert repository.find_one(OWNER, "<q1@example.com>").status is MessageStatus.PENDING  # type: ignore[union-attr]


def test_non_pending_messages_are_skipped(repository: SqliteMessageRepository) -> None:
    message = _store(repository, "<q1@example.com>", "Question")
    message.status = MessageStatus.REPLIED
    sender = RecordingSender()

    report = _workflow(repository, sender).run([message])

    assert report.processed == 0


def test_process_pending_recovers_after_smtp_outage(
    repository: SqliteMessageRepository,
) -> None:
    _store(repository, "<q1@example.com>", "First")
    _store(repository, "<q2@example.com>", "Second")
    sender = RecordingSender()
    outages = {"left": 1}

    @contextmanager
    def factory():
        if outages["left"]:
            outages["left"] -= 1
            raise NetworkError("SMTP server unreachable")
        yield sender

    workflow = AutoReplyWorkflow(
        repository, StubAnalyzer(), factory, AgentSettings(enabled=True, auto_reply=True)
    )

    with pytest.raises(NetworkError):
        workflow.process_pending(OWNER)
    assert repository.count_by_owner(OWNER, status=MessageStatus.PENDING) == 2

    report = workflow.process_pending(OWNER)

    assert (report.processed, report.replied) == (2, 2)
    assert repository.count_by_owner(OWNER, status=MessageStatus.PENDING) == 0
    assert {message.in_reply_to for message in sender.sent} == {
        "<q1@example.com>",
        "<q2@example.com>",
    }


def test_process_pending_respects_limit_and_owner(
    repository: SqliteMessageRepository,
) -> None:
    for index in range(3):
        _store(repository, f"<q{index}@example.com>", f"Question {index}")
    repository.insert(
        StoredMessage(
            owner_id="other@example.com",
            message_id="<other@example.com>",
            sender="eve@example.com",
            recipient="other@example.com",
            subject="Not yours",
            body="",
        )
    )
    sender = RecordingSender()

    report = _workflow(repository, sender).process_pending(OWNER, limit=2)

    assert report.processed == 2
    assert repository.count_by_owner(OWNER, status=MessageStatus.PENDING) == 1
    assert all(message.subject != "Re: Not yours" for message in sender.sent)


def test_process_pending_is_noop_when_inactive(repository: SqliteMessageRepository) -> None:
    _store(repository, "<q1@example.com>", "Question")
    sender = RecordingSender()

    report = _workflow(repository, sender, enabled=False).process_pending(OWNER)

    assert report.processed == 0
    assert sender.sent == []


def test_draft_for_does_not_send_or_store(repository: SqliteMessageRepository) -> None:
    message = _store(repository, "<q1@example.com>", "Question")
    sender = RecordingSender()

    draft = _workflow(repository, sender, tone="formal").draft_for(message)

    assert draft == "Reply to Question"
    assert sender.sent == []
    stored = repository.find_one(OWNER, "<q1@example.com>")
    assert stored.ai_response is None  # type: ignore[union-attr]
    assert stored.status is MessageStatus.PENDING  # type: ignore[union-attr]


def test_reply_to_sends_manual_body_and_marks_replied(
    repository: SqliteMessageRepository,
) -> None:
    message = _store(repository, "<q1@example.com>", "Question")
    sender = RecordingSender()

    _workflow(repository, sender, enabled=False).reply_to(message, "Sure, call me.")

    assert sender.sent[0].body == "Sure, call me."
    assert sender.sent[0].subject == "Re: Question"
    assert sender.sent[0].in_reply_to == "<q1@example.com>"
    stored = repository.find_one(OWNER, "<q1@example.com>")
    assert stored.status is MessageStatus.REPLIED  # type: ignore[union-attr]
    assert stored.ai_response == "Sure, call me."  # type: ignore[union-attr]
    assert stored.replied_at is not None  # type: ignore[union-attr]
    assert stored.auto_reply is False  # type: ignore[union-attr]


def test_reply_to_failure_leaves_message_untouched(
    repository: SqliteMessageRepository,
) -> None:
    message = _store(repository, "<q1@example.com>", "Question")
    sender = RecordingSender(fail_for={"<q1@example.com>"})

    with pytest.raises(NetworkError):
        _workflow(repository, sender).reply_to(message, "Sure")

    stored = repository.find_one(OWNER, "<q1@example.com>")
    assert stored.status is MessageStatus.PENDING  # type: ignore[union-attr]


def test_send_test_email_goes_to_given_address(repository: SqliteMessageRepository) -> None:
    sender = RecordingSender()

    receipt = _workflow(repository, sender).send_test_email(OWNER)

    assert sender.sent[0].to == OWNER
    assert sender.sent[0].subject == TEST_EMAIL_SUBJECT
    assert sender.sent[0].in_reply_to is None
    assert receipt.message_id == "<sent-1@example.com>"


def test_from_settings_uses_agent_switches(repository: SqliteMessageRepository) -> None:
    settings = AppSettings.model_validate({"agent": {"enabled": True, "auto_reply": True}})

    assert AutoReplyWorkflow.from_settings(settings, repository).active is True
    assert AutoReplyWorkflow.from_settings(AppSettings(), repository).active is False

"""Tests for the fetch-and-reconcile pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from fake_imap import FakeImapConnection, factory_for, make_message
from inbox_triage.core.config import ImapSettings, StorageSettings
from inbox_triage.core.errors import NetworkError, PersistenceError
from inbox_triage.core.models import (
    AccountCredentials,
    MessageStatus,
    ParsedMessage,
    SessionLimits,
    StoredMessage,
)
from inbox_triage.ingestion import EmailParser, FetchPipeline
from inbox_triage.storage import SqliteMessageRepository
from inbox_triage.transport import ImapSession

OWNER = "me@example.com"


class MemoryRepository:
    """Dict-backed repository keyed by owner and Message-ID."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], StoredMessage] = {}
        self.fail_for: set[str] = set()

    def find_one(self, owner_id: str, message_id: str) -> StoredMessage | None:
        return self.records.get((owner_id, message_id))

    def insert(self, record: StoredMessage) -> StoredMessage:
        if record.message_id in self.fail_for:
            raise PersistenceError("disk full")
        record.id = len(self.records) + 1
        self.records[(record.owner_id, record.message_id)] = record
        return record


@pytest.fixture
def connection() -> FakeImapConnection:
    return FakeImapConnection()


def _open(connection: FakeImapConnection) -> ImapSession:
    return ImapSession(
        ImapSettings(username=OWNER, app_password="app-secret", use_ssl=False),
        AccountCredentials(address=OWNER, secret="app-secret"),
        SessionLimits(operation_seconds=30),
        connection_factory=factory_for(connection),
    ).open()


def test_new_messages_are_stored_as_pending(connection: FakeImapConnection) -> None:
    for index in range(3):
        connection.add_message("INBOX", make_message(f"<m{index}@example.com>", f"Subject {index}"))
    repository = MemoryRepository()

    report = FetchPipeline(repository).run(_open(connection), OWNER, limit=10)

    assert [record.message_id for record in report.stored] == [
        "<m0@example.com>",
        "<m1@example.com>",
        "<m2@example.com>",
    ]
    assert all(record.status is MessageStatus.PENDING for record in report.stored)
    assert report.matched == 3
    assert len(repository.records) == 3


def test_no_matches_returns_empty_report(connection: FakeImapConnection) -> None:
    connection.add_message("INBOX", seen=True)

    report = FetchPipeline(MemoryRepository()).run(_open(connection), OWNER)

    assert report.stored == []
    assert report.matched == 0


def test_limit_takes_most_recent_matches(connection: FakeImapConnection) -> None:
    for index in range(5):
        connection.add_message("INBOX", make_message(f"<m{index}@example.com>"))
    repository = MemoryRepository()

    report = FetchPipeline(repository).run(_open(connection), OWNER, limit=2)

    assert [record.message_id for record in report.stored] == [
        "<m3@example.com>",
        "<m4@example.com>",
    ]
    assert report.selected == 2
    fetched = [command for command in connection.commands if command[0] == "FETCH"]
    assert len(fetched) == 2


def test_known_message_is_skipped(connection: FakeImapConnection) -> None:
    connection.add_message("INBOX", make_message("<old@example.com>"))
    connection.add_message("INBOX", make_message("<new@example.com>"))
    repository = MemoryRepository()
    repository.records[(OWNER, "<old@example.com>")] = StoredMessage(
        owner_id=OWNER,
        message_id="<old@example.com>",
        sender="a",
        recipient="b",
        subject="s",
        body="",
    )

    report = FetchPipeline(repository).run(_open(connection), OWNER)

    assert [record.message_id for record in report.stored] == ["<new@example.com>"]
    assert report.duplicates == 1


def test_same_message_for_another_owner_is_stored(connection: FakeImapConnection) -> None:
    connection.add_message("INBOX", make_message("<shared@example.com>"))
    repository = MemoryRepository()
    repository.records[("other@example.com", "<shared@example.com>")] = StoredMessage(
        owner_id="other@example.com",
        message_id="<shared@example.com>",
        sender="a",
        recipient="b",
        subject="s",
        body="",
    )

    report = FetchPipeline(repository).run(_open(connection), OWNER)

    assert len(report.stored) == 1


def test_persistence_failure_skips_only_that_message(connection: FakeImapConnection) -> None:
    for index in range(3):
        connection.add_message("INBOX", make_message(f"<m{index}@example.com>"))
    repository = MemoryRepository()
    repository.fail_for.add("<m1@example.com>")

    report = FetchPipeline(repository).run(_open(connection), OWNER)

    assert [record.message_id for record in report.stored] == [
        "<m0@example.com>",
        "<m2@example.com>",
    ]
    assert report.failures == 1


def test_parse_failure_skips_only_that_message(connection: FakeImapConnection) -> None:
    for index in range(3):
        connection.add_message("INBOX", make_message(f"<m{index}@example.com>"))

    class FlakyParser(EmailParser):
        def parse(self, payload: bytes) -> ParsedMessage:
            parsed = super().parse(payload)
            if parsed.message_id == "<m0@example.com>":
                raise ValueError("broken MIME structure")
            return parsed

    report = FetchPipeline(MemoryRepository(), FlakyParser()).run(_open(connection), OWNER)

    assert len(report.stored) == 2
    assert report.failures == 1


def test_rejected_fetch_skips_only_that_message(connection: FakeImapConnection) -> None:
    connection.add_message("INBOX", make_message("<a@example.com>"))
    repository = MemoryRepository()
    session = _open(connection)
    calls = {"count": 0}
    original = session.fetch_message

    def flaky_fetch(uid: bytes) -> bytes:
        calls["count"] += 1
        if calls["count"] == 1:
            return original(b"999")
        return original(uid)

    session.fetch_message = flaky_fetch  # type: ignore[method-assign]
    connection.add_message("INBOX", make_message("<b@example.com>"))

    report = FetchPipeline(repository).run(session, OWNER)

    assert [record.message_id for record in report.stored] == ["<b@example.com>"]
    assert report.failures == 1


def test_connection_loss_propagates(connection: FakeImapConnection) -> None:
    connection.add_message("INBOX")
    connection.failures[("FETCH", None)] = ConnectionResetError("reset")

    with pytest.raises(NetworkError):
        FetchPipeline(MemoryRepository()).run(_open(connection), OWNER)


def test_end_to_end_with_sqlite_is_idempotent(
    tmp_path: Path, connection: FakeImapConnection
) -> None:
    for index in range(3):
        connection.add_message("INBOX", make_message(f"<e2e{index}@example.com>"))

    with SqliteMessageRepository(StorageSettings(db_path=tmp_path / "mail.db")) as repository:
        pipeline = FetchPipeline(repository)
        first = pipeline.run(_open(connection), OWNER, search_criteria=["UNSEEN"], limit=10)
        second = pipeline.run(_open(connection), OWNER, search_criteria=["UNSEEN"], limit=10)

        assert len(first.stored) == 3
        assert all(record.status is MessageStatus.PENDING for record in first.stored)
        for index in range(3):
            assert repository.find_one(OWNER, f"<e2e{index}@example.com>") is not None
        assert second.stored == []
        assert second.duplicates == 3
        assert repository.count_by_owner(OWNER) == 3


def test_limit_must_be_positive(connection: FakeImapConnection) -> None:
    with pytest.raises(ValueError):
        FetchPipeline(MemoryRepository()).run(_open(connection), OWNER, limit=0)

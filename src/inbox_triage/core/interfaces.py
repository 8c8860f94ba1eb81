"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .models import ContentAnalysis, MessageStatus, StoredMessage


class MailboxSession(Protocol):
    """Operations a live IMAP session offers to the pipelines."""

    def open(self) -> MailboxSession:
        """Connect and authenticate; returns the ready session."""
        raise NotImplementedError

    def list_folders(self) -> list[bytes | tuple[bytes, bytes]]:
        """Return raw LIST response entries for the whole folder tree."""
        raise NotImplementedError

    def select_folder(self, folder: str, *, readonly: bool = False) -> int:
        """Open ``folder`` and return its message count."""
        raise NotImplementedError

    def search(self, criteria: str) -> list[bytes]:
        """Return matching UIDs in ascending arrival order."""
        raise NotImplementedError

    def fetch_message(self, uid: bytes) -> bytes:
        """Return the full RFC822 payload for ``uid`` without setting \\Seen."""
        raise NotImplementedError

    def flag_deleted(self, uids: Sequence[bytes], *, batch_size: int = 500) -> None:
        """Mark ``uids`` with the \\Deleted flag."""
        raise NotImplementedError

    def expunge(self) -> None:
        """Permanently remove messages flagged as deleted."""
        raise NotImplementedError

    def close(self) -> bool:
        """End the session; return ``True`` only for the call that closed it."""
        raise NotImplementedError


class MessageRepository(Protocol):
    """Record store for fetched messages."""

    def find_one(self, owner_id: str, message_id: str) -> StoredMessage | None:
        """Return the record keyed by ``(owner_id, message_id)`` if present."""
        raise NotImplementedError

    def insert(self, record: StoredMessage) -> StoredMessage:
        """Persist a new record and return it with its identifier assigned."""
        raise NotImplementedError

    def update(self, record: StoredMessage) -> StoredMessage:
        """Persist field changes for an existing record."""
        raise NotImplementedError

    def get(
        self, record_id: int, *, owner_id: str | None = None
    ) -> StoredMessage | None:
        """Return the record with primary key ``record_id``."""
        raise NotImplementedError

    def delete(self, record_id: int, *, owner_id: str | None = None) -> bool:
        """Remove a record; return ``False`` when nothing matched."""
        raise NotImplementedError

    def count_by_owner(
        self, owner_id: str, *, status: MessageStatus | None = None
    ) -> int:
        """Return the number of records held for ``owner_id``."""
        raise NotImplementedError

    def list_messages(
        self,
        owner_id: str,
        *,
        status: MessageStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[StoredMessage]:
        """Return records for ``owner_id`` newest first."""
        raise NotImplementedError

    def status_counts(self, owner_id: str) -> dict[str, int]:
        """Return record counts keyed by status."""
        raise NotImplementedError

    def category_counts(self, owner_id: str) -> dict[str, int]:
        """Return counts of categorised records keyed by category."""
        raise NotImplementedError

    def close(self) -> None:
        """Close database connections if necessary."""
        raise NotImplementedError


class ContentAnalyzer(Protocol):
    """Classifies messages and drafts replies."""

    def analyze(self, sender: str, subject: str, body: str) -> ContentAnalysis:
        """Return sentiment and category for a message."""
        raise NotImplementedError

    def draft_reply(self, sender: str, subject: str, body: str, tone: str) -> str:
        """Return a reply body written in ``tone``."""
        raise NotImplementedError


__all__ = [
    "ContentAnalyzer",
    "MailboxSession",
    "MessageRepository",
]

"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class MessageStatus(str, Enum):
    """Lifecycle of a stored message."""

    PENDING = "pending"
    PROCESSING = "processing"
    REPLIED = "replied"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class AccountCredentials:
    """Address and application secret used to open a mailbox session."""

    address: str
    secret: str
    owner_id: str | None = None

    @property
    def owner(self) -> str:
        """Return the store key that owns messages fetched for this account."""
        return self.owner_id or self.address.lower()

    def __repr__(self) -> str:
        return f"AccountCredentials(address={self.address!r}, secret='***')"


@dataclass(frozen=True, slots=True)
class SessionLimits:
    """Timeout thresholds applied to one mailbox session."""

    connect_seconds: float = 15.0
    auth_seconds: float = 10.0
    idle_seconds: float = 60.0
    operation_seconds: float = 30.0


@dataclass(slots=True)
class ParsedMessage:
    """Structured fields extracted from a raw RFC822 payload."""

    message_id: str
    sender: str
    recipient: str
    subject: str
    body: str
    html_body: str | None
    in_reply_to: str | None
    received_at: datetime | None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class StoredMessage:
    """Persisted record created from a fetched message."""

    owner_id: str
    message_id: str
    sender: str
    recipient: str
    subject: str
    body: str
    html_body: str | None = None
    in_reply_to: str | None = None
    status: MessageStatus = MessageStatus.PENDING
    sentiment: str | None = None
    category: str | None = None
    ai_response: str | None = None
    auto_reply: bool = False
    received_at: datetime | None = None
    replied_at: datetime | None = None
    created_at: datetime | None = None
    id: int | None = None


@dataclass(frozen=True, slots=True)
class ContentAnalysis:
    """Sentiment and category assigned to a message."""

    sentiment: str = "neutral"
    category: str = "general"


@dataclass(frozen=True, slots=True)
class FolderRef:
    """Resolved, addressable mailbox location plus its search filter."""

    path: str
    label: str | None = None
    sender: str | None = None

    @property
    def use_label(self) -> bool:
        """Whether the folder is searched through a label overlay."""
        return self.label is not None


@dataclass(slots=True)
class FetchReport:
    """Outcome summary for a fetch-and-reconcile run."""

    folder: str
    matched: int = 0
    selected: int = 0
    stored: list[StoredMessage] = field(default_factory=list)
    duplicates: int = 0
    failures: int = 0


class FolderStatus(str, Enum):
    """Terminal state of one folder within a cleanup run."""

    DELETED = "deleted"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class FolderOutcome:
    """Result of driving one folder through open, search, flag and expunge."""

    category: str
    folder: FolderRef
    status: FolderStatus
    deleted: int = 0
    stage: str | None = None
    error: str | None = None


@dataclass(slots=True)
class CleanupReport:
    """Deletion tally for a cleanup run, zero padded for every category."""

    deleted_counts: dict[str, int]
    outcomes: tuple[FolderOutcome, ...] = ()
    interrupted: str | None = None

    @property
    def total_deleted(self) -> int:
        """Sum of deletions across every requested category."""
        return sum(self.deleted_counts.values())


__all__ = [
    "AccountCredentials",
    "CleanupReport",
    "ContentAnalysis",
    "FetchReport",
    "FolderOutcome",
    "FolderRef",
    "FolderStatus",
    "MessageStatus",
    "ParsedMessage",
    "SessionLimits",
    "StoredMessage",
]

"""SQLite-backed message repository implementation."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from types import TracebackType

from ..core.config import StorageSettings
from ..core.datetime_utils import parse_datetime, serialize_datetime, utc_now
from ..core.errors import PersistenceError
from ..core.interfaces import MessageRepository
from ..core.models import MessageStatus, StoredMessage

LOGGER = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "owner_id",
    "message_id",
    "sender",
    "recipient",
    "subject",
    "body",
    "html_body",
    "in_reply_to",
    "status",
    "sentiment",
    "category",
    "ai_response",
    "auto_reply",
    "received_at",
    "replied_at",
    "created_at",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM messages"


class SqliteMessageRepository(MessageRepository):
    """Persist fetched messages using SQLite."""

    def __init__(self, settings: StorageSettings) -> None:
        """Initialise the repository and apply migrations."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(
            db_path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._apply_migrations()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteMessageRepository:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # MessageRepository API ---------------------------------------------------
    def find_one(self, owner_id: str, message_id: str) -> StoredMessage | None:
        """Return the record for ``(owner_id, message_id)`` if one exists."""
        cur = self._execute(
            f"{_SELECT} WHERE owner_id = ? AND message_id = ?",
            (owner_id, message_id),
        )
        row = cur.fetchone()
        return _row_to_message(row) if row is not None else None

    def get(
        self, record_id: int, *, owner_id: str | None = None
    ) -> StoredMessage | None:
        """Return the record with primary key ``record_id``.

        With ``owner_id`` set, records held for another owner are not returned.
        """
        query, params = _by_id(record_id, owner_id)
        cur = self._execute(f"{_SELECT} WHERE {query}", params)
        row = cur.fetchone()
        return _row_to_message(row) if row is not None else None

    def insert(self, record: StoredMessage) -> StoredMessage:
        """Insert ``record`` and return it with ``id`` and ``created_at`` set."""
        if not record.owner_id:
            raise ValueError("Message owner is required")
        if not record.message_id:
            raise ValueError("Message-ID is required")

        LOGGER.debug("Persisting message %s for %s", record.message_id, record.owner_id)
        if record.created_at is None:
            record.created_at = utc_now()
        try:
            with self._connection:
                cur = self._connection.execute(
                    """
                    INSERT INTO messages (
                        owner_id,
                        message_id,
                        sender,
                        recipient,
                        subject,
                        body,
                        html_body,
                        in_reply_to,
                        status,
                        sentiment,
                        category,
                        ai_response,
                        auto_reply,
                        received_at,
                        replied_at,
                        created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.owner_id,
                        record.message_id,
                        record.sender,
                        record.recipient,
                        record.subject,
                        record.body,
                        record.html_body,
                        record.in_reply_to,
                        MessageStatus(record.status).value,
                        record.sentiment,
                        record.category,
                        record.ai_response,
                        1 if record.auto_reply else 0,
                        serialize_datetime(record.received_at),
                        serialize_datetime(record.replied_at),
                        serialize_datetime(record.created_at),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            LOGGER.error(
                "Database integrity error persisting message %s: %s",
                record.message_id,
                exc,
            )
            raise PersistenceError(
                f"Message {record.message_id} already stored for {record.owner_id}"
            ) from exc
        except sqlite3.Error as exc:
            LOGGER.error(
                "Database error persisting message %s: %s",
                record.message_id,
                exc,
                exc_info=True,
            )
            raise PersistenceError(
                f"Database error persisting message {record.message_id}: {exc}"
            ) from exc

        record.id = cur.lastrowid
        return record

    def update(self, record: StoredMessage) -> StoredMessage:
        """Write the mutable fields of an existing record."""
        if record.id is None:
            raise ValueError("Cannot update a message that was never inserted")
        try:
            with self._connection:
                cur = self._connection.execute(
                    """
                    UPDATE messages SET
                        status = ?,
                        sentiment = ?,
                        category = ?,
                        ai_response = ?,
                        auto_reply = ?,
                        replied_at = ?
                    WHERE id = ?
                    """,
                    (
                        MessageStatus(record.status).value,
                        record.sentiment,
                        record.category,
                        record.ai_response,
                        1 if record.auto_reply else 0,
                        serialize_datetime(record.replied_at),
                        record.id,
                    ),
                )
        except sqlite3.Error as exc:
            LOGGER.error("Database error updating message id %s: %s", record.id, exc)
            raise PersistenceError(f"Failed to update message {record.id}: {exc}") from exc

        if cur.rowcount == 0:
            raise PersistenceError(f"Message {record.id} does not exist")
        return record

    def delete(self, record_id: int, *, owner_id: str | None = None) -> bool:
        """Remove a local record; return ``False`` when nothing matched."""
        query, params = _by_id(record_id, owner_id)
        try:
            with self._connection:
                cur = self._connection.execute(
                    f"DELETE FROM messages WHERE {query}", params
                )
        except sqlite3.Error as exc:
            LOGGER.error("Database error deleting message id %s: %s", record_id, exc)
            raise PersistenceError(f"Failed to delete message {record_id}: {exc}") from exc
        return cur.rowcount > 0

    def count_by_owner(
        self, owner_id: str, *, status: MessageStatus | None = None
    ) -> int:
        """Return the number of records held for ``owner_id``."""
        query = "SELECT COUNT(*) FROM messages WHERE owner_id = ?"
        params: list[object] = [owner_id]
        if status is not None:
            query += " AND status = ?"
            params.append(MessageStatus(status).value)
        cur = self._execute(query, params)
        return int(cur.fetchone()[0])

    def list_messages(
        self,
        owner_id: str,
        *,
        status: MessageStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[StoredMessage]:
        """Return records for ``owner_id`` newest first."""
        query = f"{_SELECT} WHERE owner_id = ?"
        params: list[object] = [owner_id]
        if status is not None:
            query += " AND status = ?"
            params.append(MessageStatus(status).value)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([max(limit, 0), max(offset, 0)])
        cur = self._execute(query, params)
        return [_row_to_message(row) for row in cur.fetchall()]

    def status_counts(self, owner_id: str) -> dict[str, int]:
        """Return the number of records per status for ``owner_id``."""
        cur = self._execute(
            "SELECT status, COUNT(*) FROM messages WHERE owner_id = ? "
            "GROUP BY status ORDER BY status",
            (owner_id,),
        )
        return {row[0]: int(row[1]) for row in cur.fetchall()}

    def category_counts(self, owner_id: str) -> dict[str, int]:
        """Return the number of categorised records per category."""
        cur = self._execute(
            "SELECT category, COUNT(*) FROM messages "
            "WHERE owner_id = ? AND category IS NOT NULL "
            "GROUP BY category ORDER BY category",
            (owner_id,),
        )
        return {row[0]: int(row[1]) for row in cur.fetchall()}

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._connection.close()

    # Internal helpers --------------------------------------------------------
    def _execute(self, query: str, params) -> sqlite3.Cursor:
        try:
            return self._connection.execute(query, params)
        except sqlite3.Error as exc:
            LOGGER.error("Database query failed: %s", exc)
            raise PersistenceError(f"Database query failed: {exc}") from exc

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            try:
                with self._connection:
                    self._connection.executescript(script)
            except sqlite3.Error as exc:
                raise PersistenceError(
                    f"Migration {migration.name} failed: {exc}"
                ) from exc


def _by_id(record_id: int, owner_id: str | None) -> tuple[str, tuple[object, ...]]:
    if owner_id is None:
        return "id = ?", (record_id,)
    return "id = ? AND owner_id = ?", (record_id, owner_id)


def _row_to_message(row: sqlite3.Row) -> StoredMessage:
    return StoredMessage(
        id=row["id"],
        owner_id=row["owner_id"],
        message_id=row["message_id"],
        sender=row["sender"],
        recipient=row["recipient"],
        subject=row["subject"],
        body=row["body"],
        html_body=row["html_body"],
        in_reply_to=row["in_reply_to"],
        status=MessageStatus(row["status"]),
        sentiment=row["sentiment"],
        category=row["category"],
        ai_response=row["ai_response"],
        auto_reply=bool(row["auto_reply"]),
        received_at=parse_datetime(row["received_at"]),
        replied_at=parse_datetime(row["replied_at"]),
        created_at=parse_datetime(row["created_at"]),
    )


__all__ = ["SqliteMessageRepository"]

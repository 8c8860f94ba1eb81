"""Persistence backends."""

from .sqlite import SqliteMessageRepository

__all__ = ["SqliteMessageRepository"]

"""Core utilities for configuration, logging, and shared models."""

from .config import AppSettings, load_app_settings
from .errors import (
    AuthError,
    MailError,
    NetworkError,
    OperationTimeout,
    PersistenceError,
    ProtocolError,
)
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "AuthError",
    "MailError",
    "NetworkError",
    "OperationTimeout",
    "PersistenceError",
    "ProtocolError",
    "configure_logging",
    "load_app_settings",
]

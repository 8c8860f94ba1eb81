"""Error taxonomy shared by the mailbox, storage and delivery layers."""

from __future__ import annotations

APP_PASSWORD_HINT = (
    "Use an app password rather than the account password "
    "(https://myaccount.google.com/apppasswords) and make sure IMAP access "
    "is enabled for the account "
    "(https://mail.google.com/mail/u/0/#settings/fwdandpop)."
)


class MailError(RuntimeError):
    """Base class for failures surfaced by this package."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        """Store the message together with an optional remediation hint."""
        super().__init__(message)
        self.hint = hint


class AuthError(MailError):
    """Credentials were rejected or protocol access is disabled server-side."""

    def __init__(self, message: str, *, hint: str | None = APP_PASSWORD_HINT) -> None:
        super().__init__(message, hint=hint)


class NetworkError(MailError):
    """The server could not be reached or the connection dropped."""


class OperationTimeout(MailError, TimeoutError):
    """A connection or operation exceeded its configured bound."""


class ProtocolError(MailError):
    """The server rejected a command (select, search, fetch, store, expunge)."""


class PersistenceError(MailError):
    """The local record store refused a write."""


def is_session_fatal(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` means the session can no longer be used."""
    return isinstance(exc, (NetworkError, OperationTimeout, AuthError))


__all__ = [
    "APP_PASSWORD_HINT",
    "AuthError",
    "MailError",
    "NetworkError",
    "OperationTimeout",
    "PersistenceError",
    "ProtocolError",
    "is_session_fatal",
]

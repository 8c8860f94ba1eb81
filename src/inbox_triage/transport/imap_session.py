"""IMAP session with an explicit lifecycle and deadline-bounded commands."""

from __future__ import annotations

import imaplib
import logging
import socket
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from enum import Enum
from types import TracebackType
from typing import Any

from ..core.config import ImapSettings
from ..core.errors import AuthError, NetworkError, OperationTimeout, ProtocolError
from ..core.interfaces import MailboxSession
from ..core.models import AccountCredentials, SessionLimits

LOGGER = logging.getLogger(__name__)

ConnectionFactory = Callable[[ImapSettings, float], Any]

_UNREACHABLE_HINT = "Could not reach the mail server. Check your internet connection."
_TIMEOUT_HINT = "The mail server did not respond in time. Check your firewall settings."


class SessionState(str, Enum):
    """Lifecycle states of an :class:`ImapSession`."""

    NEW = "new"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"
    ENDED = "ended"


def open_imap_connection(settings: ImapSettings, timeout: float) -> imaplib.IMAP4:
    """Open a raw ``imaplib`` connection honouring the SSL preference."""
    if settings.use_ssl:
        LOGGER.debug(
            "Connecting to IMAP host %s:%s via SSL", settings.host, settings.port
        )
        return imaplib.IMAP4_SSL(settings.host, settings.port, timeout=timeout)
    LOGGER.debug(
        "Connecting to IMAP host %s:%s without SSL", settings.host, settings.port
    )
    return imaplib.IMAP4(settings.host, settings.port, timeout=timeout)


class ImapSession(MailboxSession):
    """One authenticated IMAP connection owned by a single operation.

    The session moves ``NEW -> CONNECTING -> READY -> ENDED``; any
    connection-level failure moves it to ``FAILED`` and releases the socket
    immediately. Every command is bounded by the idle timeout and by the
    operation deadline fixed when :meth:`open` is called, whichever is
    sooner. :meth:`close` is idempotent and releases the connection at most
    once.
    """

    def __init__(
        self,
        settings: ImapSettings,
        credentials: AccountCredentials,
        limits: SessionLimits | None = None,
        *,
        connection_factory: ConnectionFactory = open_imap_connection,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Prepare the session without touching the network."""
        self._settings = settings
        self._credentials = credentials
        self._limits = limits or SessionLimits(
            connect_seconds=settings.connect_timeout_seconds,
            auth_seconds=settings.auth_timeout_seconds,
            idle_seconds=settings.idle_timeout_seconds,
        )
        self._connection_factory = connection_factory
        self._clock = clock
        self._connection: Any = None
        self._deadline: float | None = None
        self.state = SessionState.NEW
        self.selected_folder: str | None = None

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> ImapSession:
        """Open the session on entering a context manager scope."""
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is released on context exit."""
        self.close()

    # Lifecycle ----------------------------------------------------------------
    def open(self) -> ImapSession:
        """Connect and authenticate, moving the session to ``READY``."""
        if self.state is not SessionState.NEW:
            raise ProtocolError(f"Session cannot be opened from state {self.state}")

        self._deadline = self._clock() + self._limits.operation_seconds
        self.state = SessionState.CONNECTING
        connect_timeout = min(self._limits.connect_seconds, self.remaining())

        try:
            self._connection = self._connection_factory(self._settings, connect_timeout)
        except TimeoutError as exc:
            self._fail()
            raise OperationTimeout(
                f"Connection to {self._settings.host} timed out", hint=_TIMEOUT_HINT
            ) from exc
        except socket.gaierror as exc:
            self._fail()
            raise NetworkError(
                f"Could not resolve {self._settings.host}", hint=_UNREACHABLE_HINT
            ) from exc
        except (OSError, imaplib.IMAP4.error) as exc:
            self._fail()
            raise NetworkError(
                f"Failed to connect to {self._settings.host}: {exc}",
                hint=_UNREACHABLE_HINT,
            ) from exc

        LOGGER.debug("Authenticating as %s", self._credentials.address)
        self._apply_socket_timeout(min(self._limits.auth_seconds, self.remaining()))
        try:
            self._connection.login(self._credentials.address, self._credentials.secret)
        except TimeoutError as exc:
            self._fail()
            raise OperationTimeout(
                "Authentication timed out", hint=_TIMEOUT_HINT
            ) from exc
        except (imaplib.IMAP4.error, ConnectionResetError) as exc:
            # A reset right after the credential exchange is how some providers
            # reject app-password logins when IMAP access is disabled.
            self._fail()
            raise AuthError(
                f"Authentication failed for {self._credentials.address}: {exc}"
            ) from exc
        except OSError as exc:
            self._fail()
            raise NetworkError(
                f"Connection lost during authentication: {exc}",
                hint=_UNREACHABLE_HINT,
            ) from exc

        self.state = SessionState.READY
        LOGGER.info("IMAP session ready for %s", self._credentials.address)
        return self

    def close(self) -> bool:
        """End the session; only the first call has any effect."""
        if self.state is SessionState.ENDED:
            return False
        self._release(graceful=self.state is SessionState.READY)
        self.state = SessionState.ENDED
        self.selected_folder = None
        return True

    def remaining(self) -> float:
        """Seconds left before the operation deadline."""
        if self._deadline is None:
            return self._limits.operation_seconds
        return self._deadline - self._clock()

    # Commands -----------------------------------------------------------------
    def list_folders(self) -> list[bytes | tuple[bytes, bytes]]:
        """Return raw LIST entries for every folder on the server."""
        data = self._run("LIST", lambda conn: conn.list())
        return [entry for entry in data if entry]

    def select_folder(self, folder: str, *, readonly: bool = False) -> int:
        """Open ``folder`` and return the number of messages it holds."""
        # A rejected SELECT leaves the server with no folder selected.
        self.selected_folder = None
        quoted = quote_mailbox(folder)
        data = self._run(
            f"SELECT {folder}",
            lambda conn: conn.select(quoted, readonly),
        )
        self.selected_folder = folder
        try:
            return int(data[0])
        except (IndexError, TypeError, ValueError):
            return 0

    def search(self, criteria: str) -> list[bytes]:
        """Return UIDs matching ``criteria`` in ascending order."""
        self._require_selected()
        _reject_line_breaks(criteria, "Search criteria")
        data = self._run(
            f"SEARCH {criteria}",
            lambda conn: conn.uid("SEARCH", None, criteria),
        )
        return data[0].split() if data and data[0] else []

    def fetch_message(self, uid: bytes) -> bytes:
        """Return the RFC822 payload for ``uid`` without setting ``\\Seen``."""
        self._require_selected()
        uid_str = _uid_text(uid)
        data = self._run(
            f"FETCH {uid_str}",
            lambda conn: conn.uid("FETCH", uid_str, "(BODY.PEEK[])"),
        )
        payload = _extract_rfc822(data)
        if payload is None:
            raise ProtocolError(f"No message payload returned for UID {uid_str}")
        return payload

    def flag_deleted(self, uids: Sequence[bytes], *, batch_size: int = 500) -> None:
        """Mark ``uids`` with ``\\Deleted``; nothing is removed until expunge."""
        self._require_selected()
        for chunk in _chunked(uids, batch_size):
            uid_set = ",".join(_uid_text(uid) for uid in chunk)
            LOGGER.debug("Marking %s UID(s) for deletion", len(chunk))
            self._run(
                "STORE +FLAGS.SILENT",
                lambda conn, uid_set=uid_set: conn.uid(
                    "STORE", uid_set, "+FLAGS.SILENT", r"(\Deleted)"
                ),
            )

    def expunge(self) -> None:
        """Permanently remove flagged messages from the selected folder."""
        self._require_selected()
        LOGGER.debug("Expunging deleted messages in %s", self.selected_folder)
        self._run("EXPUNGE", lambda conn: conn.expunge())

    # Internal helpers ---------------------------------------------------------
    def _run(self, label: str, command: Callable[[Any], tuple[str, Any]]) -> Any:
        """Execute ``command`` under the idle and operation bounds."""
        if self.state is not SessionState.READY:
            raise ProtocolError(f"{label} issued while session is {self.state.value}")

        remaining = self.remaining()
        if remaining <= 0:
            self._fail()
            raise OperationTimeout(
                f"Operation deadline passed before {label}", hint=_TIMEOUT_HINT
            )
        self._apply_socket_timeout(min(self._limits.idle_seconds, remaining))

        try:
            status, data = command(self._connection)
        except TimeoutError as exc:
            self._fail()
            raise OperationTimeout(
                f"Server did not answer {label} in time", hint=_TIMEOUT_HINT
            ) from exc
        except imaplib.IMAP4.abort as exc:
            self._fail()
            raise NetworkError(f"Connection aborted during {label}: {exc}") from exc
        except imaplib.IMAP4.error as exc:
            raise ProtocolError(f"{label} rejected: {exc}") from exc
        except OSError as exc:
            self._fail()
            raise NetworkError(f"Connection lost during {label}: {exc}") from exc

        if status != "OK":
            raise ProtocolError(f"{label} returned {status}: {_describe(data)}")
        return data

    def _require_selected(self) -> None:
        if self.selected_folder is None:
            raise ProtocolError("No folder is selected")

    def _apply_socket_timeout(self, seconds: float) -> None:
        sock = getattr(self._connection, "sock", None)
        if sock is not None:
            sock.settimeout(max(seconds, 0.001))

    def _fail(self) -> None:
        """Force-close the connection after a session-fatal error."""
        self.state = SessionState.FAILED
        self._release(graceful=False)

    def _release(self, *, graceful: bool) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        if graceful:
            # LOGOUT without CLOSE: CLOSE would expunge \Deleted messages.
            try:
                LOGGER.debug("Logging out of IMAP session")
                connection.logout()
                return
            except (imaplib.IMAP4.error, OSError):
                LOGGER.debug("IMAP logout raised; shutting the socket down instead")
        try:
            connection.shutdown()
        except OSError:  # pragma: no cover - depends on socket state
            LOGGER.debug("IMAP shutdown raised; suppressing during teardown")


def quote_mailbox(name: str) -> str:
    """Quote a mailbox name for use as an IMAP astring."""
    _reject_line_breaks(name, "Mailbox name")
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _reject_line_breaks(value: str, what: str) -> None:
    if any(char in value for char in ("\r", "\n", "\x00")):
        raise ValueError(f"{what} must not contain CR, LF or NUL characters")


def _uid_text(uid: bytes | int | str) -> str:
    if isinstance(uid, bytes):
        return uid.decode()
    return str(uid)


def _chunked(items: Iterable[bytes], size: int) -> Iterator[list[bytes]]:
    """Yield successive lists of ``size`` elements."""
    bucket: list[bytes] = []
    for item in items:
        bucket.append(item)
        if len(bucket) >= size:
            yield bucket
            bucket = []
    if bucket:
        yield bucket


def _extract_rfc822(fetch_data: list[tuple[bytes, bytes] | bytes]) -> bytes | None:
    """Extract the message literal from ``imaplib`` response chunks."""
    for entry in fetch_data or ():
        if isinstance(entry, tuple) and len(entry) == 2:
            return entry[1]
    return None


def _describe(data: Any) -> str:
    if isinstance(data, list) and data and isinstance(data[0], bytes):
        return data[0].decode(errors="replace")
    return repr(data)


__all__ = [
    "ConnectionFactory",
    "ImapSession",
    "SessionState",
    "open_imap_connection",
    "quote_mailbox",
]

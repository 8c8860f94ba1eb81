"""Operations exposed to the HTTP layer and the command line."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from .cleanup import CleanupOrchestrator
from .core.config import AppSettings, ImapSettings
from .core.errors import AuthError
from .core.interfaces import MailboxSession, MessageRepository
from .core.models import AccountCredentials, CleanupReport, FetchReport, SessionLimits
from .ingestion import EmailParserProtocol, FetchPipeline
from .mailbox import MailboxLocator, SearchKey
from .transport import ImapSession

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[ImapSettings, AccountCredentials, SessionLimits], MailboxSession]


class MailboxService:
    """Run fetch and cleanup operations, each on its own IMAP session.

    Every public call opens one session bounded by the operation's
    timeout and closes it before returning, whatever the outcome.
    """

    def __init__(
        self,
        settings: AppSettings,
        repository: MessageRepository,
        *,
        session_factory: SessionFactory = ImapSession,
        locator: MailboxLocator | None = None,
        parser: EmailParserProtocol | None = None,
    ) -> None:
        """Store collaborators; nothing touches the network yet."""
        self._settings = settings
        self._repository = repository
        self._session_factory = session_factory
        self._locator = locator or MailboxLocator()
        self._pipeline = FetchPipeline(repository, parser)
        self._orchestrator = CleanupOrchestrator(
            self._locator, batch_size=settings.cleanup.flag_batch_size
        )

    def configured_credentials(self) -> AccountCredentials:
        """Return the account configured under ``imap``."""
        username = self._settings.imap.username
        secret = self._settings.imap.app_password
        if not username or not secret:
            raise AuthError("IMAP username and app password must be configured")
        return AccountCredentials(address=username, secret=secret)

    def fetch_new_mail(
        self,
        credentials: AccountCredentials,
        *,
        limit: int | None = None,
        search_criteria: Sequence[SearchKey] | str | None = None,
        folder: str | None = None,
    ) -> FetchReport:
        """Store matching messages not seen before and report the new ones."""
        sync = self._settings.sync
        criteria = sync.search_criteria if search_criteria is None else search_criteria
        with self._session(credentials, sync.operation_timeout_seconds) as session:
            return self._pipeline.run(
                session,
                credentials.owner,
                folder=folder or self._settings.imap.mailbox,
                search_criteria=criteria,
                limit=limit or sync.limit,
            )

    def cleanup_by_category(
        self,
        credentials: AccountCredentials,
        categories: Sequence[str] | None = None,
    ) -> CleanupReport:
        """Delete mail in ``categories`` and return the per-category tally."""
        cleanup = self._settings.cleanup
        requested = list(categories) if categories else list(cleanup.categories)
        with self._session(credentials, cleanup.operation_timeout_seconds) as session:
            return self._orchestrator.run(session, requested)

    def verify_connection(self, credentials: AccountCredentials) -> None:
        """Open and close a session; raises the mapped error on failure."""
        with self._session(credentials, self._settings.sync.operation_timeout_seconds):
            LOGGER.info("IMAP connection verified for %s", credentials.address)

    @contextmanager
    def _session(
        self, credentials: AccountCredentials, operation_seconds: float
    ) -> Iterator[MailboxSession]:
        imap = self._settings.imap
        limits = SessionLimits(
            connect_seconds=imap.connect_timeout_seconds,
            auth_seconds=imap.auth_timeout_seconds,
            idle_seconds=imap.idle_timeout_seconds,
            operation_seconds=operation_seconds,
        )
        session = self._session_factory(imap, credentials, limits)
        try:
            session.open()
            yield session
        finally:
            session.close()


__all__ = ["MailboxService", "SessionFactory"]

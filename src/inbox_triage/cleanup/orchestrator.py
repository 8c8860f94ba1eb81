"""Bulk deletion of mail by logical category."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from ..core.errors import MailError, ProtocolError, is_session_fatal
from ..core.interfaces import MailboxSession
from ..core.models import CleanupReport, FolderOutcome, FolderRef, FolderStatus
from ..mailbox.folders import FolderTree
from ..mailbox.locator import MailboxLocator
from ..mailbox.search import criteria_for

LOGGER = logging.getLogger(__name__)

STAGE_OPEN = "open"
STAGE_SEARCH = "search"
STAGE_FLAG = "flag"
STAGE_EXPUNGE = "expunge"


class _FolderFailure(Exception):
    """Internal signal carrying the stage at which a folder failed."""

    def __init__(self, stage: str, error: ProtocolError) -> None:
        super().__init__(str(error))
        self.stage = stage
        self.error = error


class CleanupOrchestrator:
    """Drive each category's folders through open, search, flag and expunge.

    Categories run one after another on a single session, and the folders
    of a category run in resolution order. A folder that fails at any stage
    contributes nothing and the run moves on. Only a lost session stops the
    run early; the report then names the reason and still lists every
    requested category.
    """

    def __init__(
        self, locator: MailboxLocator | None = None, *, batch_size: int = 500
    ) -> None:
        """Use ``locator`` for folder resolution and ``batch_size`` UIDs per STORE."""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._locator = locator or MailboxLocator()
        self._batch_size = batch_size

    def run(self, session: MailboxSession, categories: Sequence[str]) -> CleanupReport:
        """Delete mail for ``categories`` and return the zero-padded tally."""
        requested = list(dict.fromkeys(categories))
        LOGGER.info("Starting cleanup for categories: %s", ", ".join(requested))

        outcomes: list[FolderOutcome] = []
        interrupted: str | None = None
        try:
            tree = self._locator.list_folders(session)
            for category in requested:
                outcomes.extend(self._clean_category(session, tree, category))
        except MailError as exc:
            if not is_session_fatal(exc):
                raise
            interrupted = str(exc)
            LOGGER.error("Cleanup interrupted, session lost: %s", exc)

        report = CleanupReport(
            deleted_counts=_tally(requested, outcomes),
            outcomes=tuple(outcomes),
            interrupted=interrupted,
        )
        LOGGER.info(
            "Cleanup complete: %s (total %s)",
            report.deleted_counts,
            report.total_deleted,
        )
        return report

    def _clean_category(
        self, session: MailboxSession, tree: FolderTree, category: str
    ) -> list[FolderOutcome]:
        folders = self._locator.resolve(category, tree)
        if not folders:
            LOGGER.info("No folders found for %s, skipping", category)
            return []

        results = []
        for folder in folders:
            outcome = self._clean_folder(session, category, folder)
            if outcome.status is FolderStatus.DELETED:
                LOGGER.info(
                    "Deleted %s message(s) from %s for %s",
                    outcome.deleted,
                    folder.path,
                    category,
                )
            results.append(outcome)
        return results

    def _clean_folder(
        self, session: MailboxSession, category: str, folder: FolderRef
    ) -> FolderOutcome:
        try:
            count = self._delete_matches(session, folder)
        except _FolderFailure as failure:
            LOGGER.warning(
                "Cleanup of %s for %s failed at %s: %s",
                folder.path,
                category,
                failure.stage,
                failure.error,
            )
            return FolderOutcome(
                category=category,
                folder=folder,
                status=FolderStatus.FAILED,
                stage=failure.stage,
                error=str(failure.error),
            )

        status = FolderStatus.DELETED if count else FolderStatus.EMPTY
        return FolderOutcome(
            category=category, folder=folder, status=status, deleted=count
        )

    def _delete_matches(self, session: MailboxSession, folder: FolderRef) -> int:
        with _stage(STAGE_OPEN):
            total = session.select_folder(folder.path)
        if total == 0:
            LOGGER.info("Folder %s is empty", folder.path)
            return 0

        criteria = criteria_for(folder)
        with _stage(STAGE_SEARCH):
            uids = session.search(criteria)
        if not uids:
            LOGGER.info("No messages in %s match %s", folder.path, criteria)
            return 0

        LOGGER.info("Marking %s message(s) in %s for deletion", len(uids), folder.path)
        with _stage(STAGE_FLAG):
            session.flag_deleted(uids, batch_size=self._batch_size)
        # Flags are left in place if the expunge is rejected.
        with _stage(STAGE_EXPUNGE):
            session.expunge()
        return len(uids)


@contextmanager
def _stage(name: str) -> Iterator[None]:
    """Re-raise a :class:`ProtocolError` tagged with the failing stage."""
    try:
        yield
    except ProtocolError as exc:
        raise _FolderFailure(name, exc) from exc


def _tally(categories: Sequence[str], outcomes: Sequence[FolderOutcome]) -> dict[str, int]:
    counts = dict.fromkeys(categories, 0)
    for outcome in outcomes:
        if outcome.status is FolderStatus.DELETED:
            counts[outcome.category] = counts.get(outcome.category, 0) + outcome.deleted
    return counts


__all__ = [
    "CleanupOrchestrator",
    "STAGE_EXPUNGE",
    "STAGE_FLAG",
    "STAGE_OPEN",
    "STAGE_SEARCH",
]

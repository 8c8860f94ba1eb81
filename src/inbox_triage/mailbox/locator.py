"""Resolve logical cleanup categories to folders present on the server."""

from __future__ import annotations

import logging

from ..core.interfaces import MailboxSession
from ..core.models import FolderRef
from .categories import GMAIL_CATEGORY_MAP, CategoryMap, CategoryRule, ResolutionStrategy
from .folders import FolderTree

LOGGER = logging.getLogger(__name__)


class MailboxLocator:
    """Map categories onto folder references using a live folder tree."""

    def __init__(self, category_map: CategoryMap = GMAIL_CATEGORY_MAP) -> None:
        """Use ``category_map`` as the provider taxonomy."""
        self._category_map = category_map

    @property
    def category_map(self) -> CategoryMap:
        """Return the taxonomy this locator resolves against."""
        return self._category_map

    def list_folders(self, session: MailboxSession) -> FolderTree:
        """Fetch the folder hierarchy once for a whole cleanup run."""
        tree = FolderTree.from_list_response(session.list_folders())
        LOGGER.info("Available mailboxes: %s", ", ".join(tree.names()))
        return tree

    def resolve(self, category: str, tree: FolderTree) -> list[FolderRef]:
        """Return the folders to clean for ``category``, possibly none."""
        rule = self._category_map.get(category)
        if rule is None:
            LOGGER.warning("Unknown category: %s", category)
            return []

        primary = self._category_map.primary_folder
        strategy = rule.strategy
        if strategy is ResolutionStrategy.LABEL:
            resolved = [FolderRef(path=primary, label=rule.label)]
            physical = _first_existing(rule, tree)
            if physical is not None and physical != primary:
                resolved.append(FolderRef(path=physical))
        elif strategy is ResolutionStrategy.SENDER:
            resolved = [FolderRef(path=primary, sender=rule.sender)]
        else:
            physical = _first_existing(rule, tree)
            resolved = [FolderRef(path=physical)] if physical is not None else []

        if not resolved:
            LOGGER.warning("Could not find a folder for category: %s", category)
        else:
            LOGGER.debug(
                "Category %s resolved to %s",
                category,
                ", ".join(_describe(ref) for ref in resolved),
            )
        return resolved


def _first_existing(rule: CategoryRule, tree: FolderTree) -> str | None:
    for candidate in rule.folders:
        if tree.exists(candidate):
            return tree.find(candidate).path  # type: ignore[union-attr]
    return None


def _describe(ref: FolderRef) -> str:
    if ref.label:
        return f"{ref.path} (label {ref.label})"
    if ref.sender:
        return f"{ref.path} (from {ref.sender})"
    return ref.path


__all__ = ["MailboxLocator"]

"""Static mapping from logical cleanup categories to provider folders."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class ResolutionStrategy(str, Enum):
    """How a category is located on the server."""

    LABEL = "label"
    SENDER = "sender"
    FOLDER = "folder"


@dataclass(frozen=True, slots=True)
class CategoryRule:
    """Candidate folders and optional filter for one category.

    ``folders`` are tried in order. At most one of ``label`` and ``sender``
    may be set; with neither the category is a plain folder.
    """

    name: str
    folders: tuple[str, ...] = ()
    label: str | None = None
    sender: str | None = None

    def __post_init__(self) -> None:
        if self.label and self.sender:
            raise ValueError(
                f"Category '{self.name}' cannot use both a label and a sender filter"
            )

    @property
    def strategy(self) -> ResolutionStrategy:
        """Return the single resolution strategy that applies to this rule."""
        if self.label:
            return ResolutionStrategy.LABEL
        if self.sender:
            return ResolutionStrategy.SENDER
        return ResolutionStrategy.FOLDER


@dataclass(frozen=True, eq=False)
class CategoryMap:
    """Immutable category table plus the provider's primary inbox name."""

    rules: Mapping[str, CategoryRule] = field(default_factory=dict)
    primary_folder: str = "INBOX"

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    @classmethod
    def from_rules(
        cls, rules: Iterable[CategoryRule], *, primary_folder: str = "INBOX"
    ) -> CategoryMap:
        """Build a map keyed by each rule's name."""
        return cls(
            rules={rule.name: rule for rule in rules}, primary_folder=primary_folder
        )

    def get(self, name: str) -> CategoryRule | None:
        """Return the rule for ``name`` or ``None`` for unknown categories."""
        return self.rules.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.rules

    def __iter__(self) -> Iterator[str]:
        return iter(self.rules)


# Gmail folder names vary by locale, hence several candidates per category.
GMAIL_CATEGORY_MAP = CategoryMap.from_rules(
    (
        CategoryRule(
            name="promotional",
            folders=("[Gmail]/Promotions", "Promotions"),
            label="Promotions",
        ),
        CategoryRule(
            name="social", folders=("[Gmail]/Social", "Social"), label="Social"
        ),
        CategoryRule(
            name="updates", folders=("[Gmail]/Updates", "Updates"), label="Updates"
        ),
        CategoryRule(
            name="purchases",
            folders=("[Gmail]/Purchases", "Purchases"),
            label="Purchases",
        ),
        CategoryRule(name="spam", folders=("[Gmail]/Spam", "Spam", "Junk")),
        CategoryRule(name="trash", folders=("[Gmail]/Trash", "Trash", "[Gmail]/Bin")),
        CategoryRule(name="noreply", sender="noreply"),
    )
)


__all__ = [
    "CategoryMap",
    "CategoryRule",
    "GMAIL_CATEGORY_MAP",
    "ResolutionStrategy",
]

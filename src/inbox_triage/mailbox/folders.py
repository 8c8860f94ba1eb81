"""Folder tree built from IMAP LIST responses."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

LOGGER = logging.getLogger(__name__)

_LIST_LINE_RE = re.compile(
    r'^\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.+)$',
    re.IGNORECASE,
)
_LITERAL_MARKER_RE = re.compile(r"\{\d+\}$")

ListEntry = bytes | tuple[bytes, bytes]


@dataclass(slots=True)
class FolderNode:
    """One folder in the hierarchy; children are keyed by their leaf name."""

    name: str
    path: str
    flags: frozenset[str] = frozenset()
    listed: bool = False
    children: dict[str, FolderNode] = field(default_factory=dict)

    @property
    def selectable(self) -> bool:
        """Whether the server reported the folder and allows SELECT on it."""
        return self.listed and "\\noselect" not in {flag.lower() for flag in self.flags}


class FolderTree:
    """Nested view of a server's folders.

    Providers such as Gmail nest system folders under a parent
    (``[Gmail]/Spam``), so lookups walk the hierarchy one segment at a time
    instead of comparing flat names.
    """

    def __init__(self, delimiter: str | None = "/") -> None:
        """Create an empty tree using ``delimiter`` between path segments."""
        self.delimiter = delimiter
        self.roots: dict[str, FolderNode] = {}

    @classmethod
    def from_list_response(cls, entries: Iterable[ListEntry]) -> FolderTree:
        """Build a tree from the raw entries returned by ``IMAP4.list()``."""
        parsed = [item for item in (parse_list_entry(entry) for entry in entries) if item]
        delimiter = next((delim for _, delim, _ in parsed if delim), None)
        tree = cls(delimiter=delimiter or "/")
        for flags, entry_delimiter, path in parsed:
            tree.add(path, flags, delimiter=entry_delimiter)
        return tree

    def add(
        self,
        path: str,
        flags: Iterable[str] = (),
        *,
        delimiter: str | None = None,
    ) -> FolderNode:
        """Insert ``path`` creating unlisted parents as needed."""
        segments = self._split(path, delimiter or self.delimiter)
        level = self.roots
        node: FolderNode | None = None
        for index, segment in enumerate(segments):
            key = _normalise_segment(segment, top_level=index == 0)
            node = level.get(key)
            if node is None:
                node_path = (delimiter or self.delimiter or "").join(segments[: index + 1])
                node = FolderNode(name=segment, path=node_path)
                level[key] = node
            level = node.children
        assert node is not None
        node.flags = frozenset(flags)
        node.listed = True
        node.path = path
        return node

    def find(self, path: str) -> FolderNode | None:
        """Return the node for ``path`` or ``None`` when it is absent."""
        segments = self._split(path, self.delimiter)
        level = self.roots
        node: FolderNode | None = None
        for index, segment in enumerate(segments):
            node = level.get(_normalise_segment(segment, top_level=index == 0))
            if node is None:
                return None
            level = node.children
        return node

    def exists(self, path: str) -> bool:
        """Whether ``path`` was reported by the server and can be selected."""
        node = self.find(path)
        return node is not None and node.selectable

    def walk(self) -> Iterator[FolderNode]:
        """Yield every node depth first."""
        stack = list(reversed(self.roots.values()))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children.values()))

    def names(self) -> list[str]:
        """Return the full path of every listed folder."""
        return [node.path for node in self.walk() if node.listed]

    @staticmethod
    def _split(path: str, delimiter: str | None) -> list[str]:
        if not delimiter:
            return [path]
        return [segment for segment in path.split(delimiter) if segment] or [path]


def parse_list_entry(entry: ListEntry) -> tuple[frozenset[str], str | None, str] | None:
    """Parse one LIST response entry into ``(flags, delimiter, path)``."""
    literal: bytes | None = None
    if isinstance(entry, tuple):
        head, literal = entry[0], entry[1]
    else:
        head = entry
    line = head.decode("utf-8", errors="replace").strip()
    if literal is not None:
        line = _LITERAL_MARKER_RE.sub("", line).rstrip() + " " + _quote(
            literal.decode("utf-8", errors="replace")
        )

    match = _LIST_LINE_RE.match(line)
    if match is None:
        LOGGER.debug("Ignoring unparseable LIST entry %r", line)
        return None

    flags = frozenset(match.group("flags").split())
    raw_delimiter = match.group("delimiter")
    delimiter = None if raw_delimiter.upper() == "NIL" else _unquote(raw_delimiter)
    path = _unquote(match.group("name").strip())
    return flags, delimiter, path


def _normalise_segment(segment: str, *, top_level: bool) -> str:
    # INBOX is case-insensitive at the top level.
    if top_level and segment.upper() == "INBOX":
        return "INBOX"
    return segment


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


__all__ = ["FolderNode", "FolderTree", "ListEntry", "parse_list_entry"]

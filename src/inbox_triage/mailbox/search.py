"""Construction of IMAP SEARCH criteria strings."""

from __future__ import annotations

import re
from collections.abc import Sequence

from ..core.models import FolderRef

SearchKey = str | Sequence[str]

ALL_MESSAGES = "ALL"
UNSEEN_MESSAGES = "UNSEEN"

_SEARCH_ATOM_RE = re.compile(r"^[A-Z0-9-]+$")
_LINE_BREAKING = ("\r", "\n", "\x00")


def check_line_safe(value: str, what: str = "Search value") -> str:
    """Return ``value`` unchanged; raise ``ValueError`` if it holds CR, LF or NUL.

    Such characters would end the IMAP command line early and let the rest
    of the value run as a new command.
    """
    if any(char in value for char in _LINE_BREAKING):
        raise ValueError(f"{what} must not contain CR, LF or NUL characters")
    return value


def quote_value(value: str) -> str:
    """Quote a search argument as an IMAP string."""
    check_line_safe(value)
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def search_keyword(name: str) -> str:
    """Normalise a bare search key such as ``unseen`` or ``x-gm-labels``."""
    keyword = name.strip().upper()
    if not _SEARCH_ATOM_RE.match(keyword):
        raise ValueError(f"Invalid search key {name!r}")
    return keyword


def compile_criteria(criteria: Sequence[SearchKey] | str | None) -> str:
    """Turn ``["UNSEEN", ["FROM", "bob"]]`` style criteria into a SEARCH string.

    Bare strings must be search keywords; pairs become ``KEY "value"``.
    Multiple keys are ANDed, as IMAP does for a key list. An empty or
    missing list searches every message. A plain string is taken as an
    already-built SEARCH expression and only checked for line breaks.
    """
    if criteria is None:
        return ALL_MESSAGES
    if isinstance(criteria, str):
        return check_line_safe(criteria, "Search criteria").strip() or ALL_MESSAGES

    parts: list[str] = []
    for key in criteria:
        if isinstance(key, str):
            if key.strip():
                parts.append(search_keyword(key))
            continue
        if len(key) != 2:
            raise ValueError(f"Search key must be a keyword or a pair, got {key!r}")
        name, value = key
        parts.append(f"{search_keyword(name)} {quote_value(str(value))}")
    return " ".join(parts) or ALL_MESSAGES


def criteria_for(folder: FolderRef) -> str:
    """Return the cleanup search for ``folder``.

    Label overlays search the provider's category label, sender rules search
    the FROM field and anything else matches the whole folder.
    """
    if folder.label:
        return f"X-GM-LABELS {quote_value(folder.label)}"
    if folder.sender:
        return f"FROM {quote_value(folder.sender)}"
    return ALL_MESSAGES


__all__ = [
    "ALL_MESSAGES",
    "SearchKey",
    "UNSEEN_MESSAGES",
    "check_line_safe",
    "compile_criteria",
    "criteria_for",
    "quote_value",
    "search_keyword",
]

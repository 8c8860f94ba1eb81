"""Folder discovery and category resolution."""

from .categories import GMAIL_CATEGORY_MAP, CategoryMap, CategoryRule, ResolutionStrategy
from .folders import FolderNode, FolderTree, parse_list_entry
from .locator import MailboxLocator
from .search import SearchKey, compile_criteria, criteria_for

__all__ = [
    "CategoryMap",
    "CategoryRule",
    "FolderNode",
    "FolderTree",
    "GMAIL_CATEGORY_MAP",
    "MailboxLocator",
    "ResolutionStrategy",
    "SearchKey",
    "compile_criteria",
    "criteria_for",
    "parse_list_entry",
]

"""Web application entry point for Inbox Triage."""

from .app import create_app

__all__ = ["create_app"]

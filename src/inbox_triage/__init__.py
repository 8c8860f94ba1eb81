"""Email triage assistant: IMAP reconciliation, cleanup and auto-reply."""

__version__ = "0.1.0"

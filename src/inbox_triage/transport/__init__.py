"""Transport adapters for the mail server protocols."""

from .imap_session import ImapSession, SessionState, open_imap_connection
from .smtp_client import OutgoingMessage, SendReceipt, SmtpClient

__all__ = [
    "ImapSession",
    "OutgoingMessage",
    "SendReceipt",
    "SessionState",
    "SmtpClient",
    "open_imap_connection",
]

"""SMTP client for sending replies with threading headers."""

from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid

from ..core.config import SmtpSettings
from ..core.errors import AuthError, NetworkError, ProtocolError

LOGGER = logging.getLogger(__name__)

_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"></head>
  <body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif;
               font-size: 14px; line-height: 1.6; color: #333;">
    <div>{content}</div>
  </body>
</html>
"""


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    """Outgoing email message representation.

    Attributes:
        to: Recipient email address
        subject: Email subject line
        body: Plain text body; an HTML alternative is derived from it
        in_reply_to: Message-ID of the original email (for threading)
        references: Space-separated Message-IDs for thread context
    """

    to: str
    subject: str
    body: str
    in_reply_to: str | None = None
    references: str | None = None


@dataclass(frozen=True, slots=True)
class SendReceipt:
    """Result of a successful submission."""

    message_id: str


class SmtpClient:
    """SMTP client for sending emails.

    Provides context manager interface for automatic connection management.
    Supports both TLS (STARTTLS) and SSL connections.

    Example:
        >>> settings = SmtpSettings(host="smtp.gmail.com", ...)
        >>> with SmtpClient(settings) as client:
        ...     receipt = client.send(OutgoingMessage(to="user@example.com", ...))
    """

    def __init__(self, settings: SmtpSettings) -> None:
        """Initialize SMTP client with configuration."""
        self._settings = settings
        self._connection: smtplib.SMTP | None = None

    def __enter__(self) -> SmtpClient:
        """Enter context manager, establishing connection."""
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing connection."""
        self.disconnect()

    def connect(self) -> None:
        """Establish SMTP connection and authenticate.

        Raises:
            AuthError: If the server rejects the credentials
            NetworkError: If the server cannot be reached
            ProtocolError: For any other SMTP level rejection
        """
        if not self._settings.host:
            raise ProtocolError("SMTP host not configured")

        LOGGER.info(
            "Attempting SMTP connection to %s:%d",
            self._settings.host,
            self._settings.port,
        )

        try:
            if self._settings.use_tls:
                LOGGER.debug("Using STARTTLS for SMTP connection")
                self._connection = smtplib.SMTP(
                    self._settings.host,
                    self._settings.port,
                    timeout=self._settings.timeout_seconds,
                )
                self._connection.starttls()
            else:
                LOGGER.debug("Using SSL for SMTP connection")
                self._connection = smtplib.SMTP_SSL(
                    self._settings.host,
                    self._settings.port,
                    timeout=self._settings.timeout_seconds,
                )

            if self._settings.username and self._settings.password:
                LOGGER.debug("Authenticating as %s", self._settings.username)
                self._connection.login(
                    self._settings.username,
                    self._settings.password,
                )
                LOGGER.info("SMTP authentication successful")

        except smtplib.SMTPAuthenticationError as exc:
            LOGGER.error("SMTP authentication failed: %s", exc)
            self._abandon_connection()
            raise AuthError(f"SMTP authentication failed: {exc}") from exc
        except smtplib.SMTPConnectError as exc:
            LOGGER.error("SMTP connection failed: %s", exc)
            self._abandon_connection()
            raise NetworkError(f"Failed to connect to SMTP server: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("SMTP error: %s", exc)
            self._abandon_connection()
            raise ProtocolError(f"SMTP error: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error connecting to SMTP server: %s", exc)
            self._abandon_connection()
            raise NetworkError(f"Network error: {exc}") from exc

    def disconnect(self) -> None:
        """Close SMTP connection gracefully."""
        if self._connection:
            try:
                self._connection.quit()
                LOGGER.debug("SMTP connection closed")
            except (smtplib.SMTPException, OSError) as exc:
                LOGGER.warning("Error closing SMTP connection: %s", exc)
            finally:
                self._connection = None

    def _abandon_connection(self) -> None:
        """Close a half-open connection left behind by a failed handshake."""
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.close()
        except OSError:  # pragma: no cover - depends on socket state
            LOGGER.debug("SMTP close raised; suppressing during teardown")

    def send(self, message: OutgoingMessage) -> SendReceipt:
        """Send ``message`` and return the Message-ID it was submitted with."""
        if not self._connection:
            raise ProtocolError("Not connected to SMTP server")

        LOGGER.info("Sending email to %s: %s", message.to, message.subject)
        mime_message = self._build_mime_message(message)

        try:
            refused = self._connection.send_message(mime_message)
        except smtplib.SMTPServerDisconnected as exc:
            LOGGER.error("SMTP server disconnected: %s", exc)
            raise NetworkError(f"SMTP server disconnected: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("Failed to send email: %s", exc)
            raise ProtocolError(f"Failed to send email: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error while sending email: %s", exc)
            raise NetworkError(f"Network error: {exc}") from exc

        if refused:
            LOGGER.warning("Some recipients were refused: %s", refused)
            raise ProtocolError(f"Some recipients were refused: {refused}")

        message_id = mime_message["Message-ID"]
        LOGGER.info("Email sent to %s (%s)", message.to, message_id)
        return SendReceipt(message_id=message_id)

    def _build_mime_message(self, message: OutgoingMessage) -> MIMEMultipart:
        """Build a plain text plus HTML alternative message."""
        mime_msg = MIMEMultipart("alternative")

        username = self._settings.username or ""
        from_address = username
        if self._settings.from_name:
            from_address = f"{self._settings.from_name} <{username}>"

        domain = username.rpartition("@")[2] or None
        mime_msg["From"] = from_address
        mime_msg["To"] = message.to
        mime_msg["Subject"] = message.subject
        mime_msg["Date"] = formatdate(localtime=True)
        mime_msg["Message-ID"] = make_msgid(domain=domain)

        if message.in_reply_to:
            mime_msg["In-Reply-To"] = message.in_reply_to
            mime_msg["References"] = message.references or message.in_reply_to

        mime_msg.attach(MIMEText(message.body, "plain", "utf-8"))
        mime_msg.attach(MIMEText(format_html_body(message.body), "html", "utf-8"))
        return mime_msg


def format_html_body(text: str) -> str:
    """Render plain text as a minimal HTML document."""
    content = html.escape(text).replace("\n", "<br>\n")
    return _HTML_TEMPLATE.format(content=content)


__all__ = ["OutgoingMessage", "SendReceipt", "SmtpClient", "format_html_body"]

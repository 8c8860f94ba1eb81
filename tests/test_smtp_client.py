"""Tests for the SMTP delivery client."""

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock

import pytest

from inbox_triage.core.config import SmtpSettings
from inbox_triage.core.errors import AuthError, NetworkError, ProtocolError
from inbox_triage.transport import OutgoingMessage, SmtpClient
from inbox_triage.transport import smtp_client as smtp_module
from inbox_triage.transport.smtp_client import format_html_body


def _settings() -> SmtpSettings:
    return SmtpSettings(
        host="smtp.test",
        port=587,
        username="me@example.com",
        password="app-secret",
        from_name="Me",
    )


def test_send_builds_threaded_message(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = MagicMock()
    connection.send_message.return_value = {}
    monkeypatch.setattr(smtp_module.smtplib, "SMTP", MagicMock(return_value=connection))

    with SmtpClient(_settings()) as client:
        receipt = client.send(
            OutgoingMessage(
                to="bob@example.com",
                subject="Re: Question",
                body="Line one\nLine <two>",
                in_reply_to="<q1@example.com>",
            )
        )

    connection.starttls.assert_called_once()
    connection.login.assert_called_once_with("me@example.com", "app-secret")
    connection.quit.assert_called_once()
    sent = connection.send_message.call_args.args[0]
    assert sent["From"] == "Me <me@example.com>"
    assert sent["In-Reply-To"] == "<q1@example.com>"
    assert sent["References"] == "<q1@example.com>"
    assert receipt.message_id == sent["Message-ID"]
    assert receipt.message_id.endswith("@example.com>")


def test_authentication_failure_maps_to_auth_error(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = MagicMock()
    connection.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
    monkeypatch.setattr(smtp_module.smtplib, "SMTP", MagicMock(return_value=connection))

    with pytest.raises(AuthError) as excinfo:
        SmtpClient(_settings()).connect()
    assert excinfo.value.hint


def test_unreachable_host_maps_to_network_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        smtp_module.smtplib, "SMTP", MagicMock(side_effect=OSError("unreachable"))
    )

    with pytest.raises(NetworkError):
        SmtpClient(_settings()).connect()


def test_refused_recipients_raise_protocol_error(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = MagicMock()
    connection.send_message.return_value = {"bob@example.com": (550, b"no such user")}
    monkeypatch.setattr(smtp_module.smtplib, "SMTP", MagicMock(return_value=connection))

    client = SmtpClient(_settings())
    client.connect()
    with pytest.raises(ProtocolError):
        client.send(OutgoingMessage(to="bob@example.com", subject="Hi", body="Hi"))


def test_send_without_connection_is_rejected() -> None:
    with pytest.raises(ProtocolError):
        SmtpClient(_settings()).send(OutgoingMessage(to="a@b.c", subject="s", body="b"))


def test_format_html_body_escapes_and_breaks_lines() -> None:
    rendered = format_html_body("a < b\nnext")

    assert "a &lt; b<br>" in rendered


def test_failed_starttls_closes_the_socket(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = MagicMock()
    connection.starttls.side_effect = smtplib.SMTPNotSupportedError("STARTTLS not offered")
    monkeypatch.setattr(smtp_module.smtplib, "SMTP", MagicMock(return_value=connection))

    client = SmtpClient(_settings())
    with pytest.raises(ProtocolError):
        client.connect()

    connection.close.assert_called_once()
    with pytest.raises(ProtocolError):
        client.send(OutgoingMessage(to="a@b.c", subject="s", body="b"))


def test_rejected_login_closes_the_socket(monkeypatch: pytest.MonkeyPatch) -> None:
    connection = MagicMock()
    connection.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
    monkeypatch.setattr(smtp_module.smtplib, "SMTP", MagicMock(return_value=connection))

    with pytest.raises(AuthError):
        SmtpClient(_settings()).connect()

    connection.close.assert_called_once()
    connection.quit.assert_not_called()

"""Unit tests for auth/notifier.py -- ResetNotifier delivery and address redaction."""

import smtplib
from unittest.mock import MagicMock, patch

from auth.notifier import ResetNotifier, redact_email


def _configured(**overrides) -> ResetNotifier:
    options = dict(smtp_host="smtp.example.com", smtp_user="bot", smtp_password="pw", from_email="noreply@example.com")
    options.update(overrides)
    return ResetNotifier(**options)


def test_redact_email() -> None:
    assert redact_email("ann@example.com") == "an***@example.com"
    assert redact_email("no-at-sign") == "redacted"


def test_dev_mode_logs_instead_of_sending(caplog) -> None:
    notifier = ResetNotifier()
    assert not notifier.is_configured
    with patch("auth.notifier.smtplib.SMTP") as smtp:
        assert notifier.send_password_reset("ann@example.com", "http://localhost:3000/reset-password?token=t") is True
    smtp.assert_not_called()
    assert "ann@example.com" not in caplog.text


def test_starttls_send() -> None:
    server = MagicMock()
    with patch("auth.notifier.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value = server
        assert _configured().send_password_reset("ann@example.com", "http://link/reset?token=t") is True
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot", "pw")
    from_addr, to_addr, body = server.sendmail.call_args.args
    assert (from_addr, to_addr) == ("noreply@example.com", "ann@example.com")
    assert "http://link/reset?token=t" in body


def test_ssl_send_when_tls_disabled() -> None:
    server = MagicMock()
    with patch("auth.notifier.smtplib.SMTP_SSL") as smtp_ssl:
        smtp_ssl.return_value.__enter__.return_value = server
        assert _configured(smtp_use_tls=False, smtp_port=465).send_password_reset("ann@example.com", "l") is True
    server.starttls.assert_not_called()
    server.sendmail.assert_called_once()


def test_smtp_failure_returns_false() -> None:
    with patch("auth.notifier.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value.sendmail.side_effect = smtplib.SMTPException("boom")
        assert _configured().send_password_reset("ann@example.com", "l") is False


def test_connection_refused_returns_false() -> None:
    with patch("auth.notifier.smtplib.SMTP", side_effect=ConnectionRefusedError()):
        assert _configured().send_password_reset("ann@example.com", "l") is False

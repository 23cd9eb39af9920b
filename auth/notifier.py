"""
auth/notifier.py -- Password reset email delivery.

The auth service hands a finished reset link to ResetNotifier and does not
wait on the outcome. Delivery is best effort: failures are logged here and
reported as False, never raised, because the forgot-password response must
not depend on (or reveal anything about) the mail server.

Dev mode: when SMTP_HOST or MAIL_FROM is not configured, the message is
logged instead of sent so local development works without a mail server.

Addresses are redacted in every log line.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger("tokengate.notifier")

_SMTP_TIMEOUT_SECONDS = 30


def redact_email(email: str) -> str:
    """Return a log-safe form of an address: ann@example.com -> an***@example.com."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class ResetNotifier:
    """Send password reset links by email."""

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        from_name: str = "Tokengate",
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send_password_reset(self, to_email: str, reset_link: str) -> bool:
        """Email reset_link to to_email. Returns True on success (or dev-mode log), False on failure."""
        subject = "Reset your password"
        text_body = (
            "We received a request to reset your password.\n\n"
            f"Open this link within the next hour to choose a new one:\n{reset_link}\n\n"
            "If you did not ask for this, you can ignore this email."
        )
        html_body = (
            "<p>We received a request to reset your password.</p>"
            f'<p><a href="{reset_link}">Choose a new password</a> (valid for one hour).</p>'
            "<p>If you did not ask for this, you can ignore this email.</p>"
        )
        return self._send_email(to_email, subject, html_body, text_body)

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        if not self.is_configured:
            logger.info("Email not configured; would send %r to %s", subject, redact_email(to_email))
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=_SMTP_TIMEOUT_SECONDS) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=_SMTP_TIMEOUT_SECONDS
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError):
            logger.exception("Password reset email to %s failed", redact_email(to_email))
            return False

        logger.info("Password reset email sent to %s", redact_email(to_email))
        return True

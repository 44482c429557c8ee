"""Outbound email through an SMTP relay (Gmail by default).

Credentials come from the environment.  Their absence is not a startup
error: ``send`` raises ``MailerNotConfiguredError`` and the ``send_email``
tool turns that into a recoverable failure for the model.
"""

from __future__ import annotations

import logging
import re
import smtplib
import time
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from src.config import SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_TIMEOUT_SECONDS, SMTP_USER
from src.services.metrics import metrics

logger = logging.getLogger(__name__)

# RFC 5322-ish pattern, covers the vast majority of real-world emails.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "No email address was provided. Please ask the user for one."
    email = email.strip()
    if not _EMAIL_RE.match(email):
        return (
            f'"{email}" does not look like a valid email address. '
            "Please ask the user to double-check it."
        )
    return None


class MailerError(Exception):
    """Raised when the SMTP relay refuses or fails to deliver a message."""


class MailerNotConfiguredError(MailerError):
    """Raised when SMTP credentials are missing."""


class Mailer:
    """Sends one message per call over STARTTLS.  Never retries."""

    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        user: str | None = SMTP_USER,
        password: str | None = SMTP_PASSWORD,
        timeout: float = SMTP_TIMEOUT_SECONDS,
    ):
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._user and self._password)

    def send(
        self,
        *,
        to: str,
        subject: str,
        text: str,
        html: str | None = None,
        from_name: str | None = None,
    ) -> str:
        """Send a message and return its Message-ID."""
        if not self.is_configured:
            raise MailerNotConfiguredError(
                "Email is not configured. Set SMTP_USER and SMTP_PASSWORD "
                "(or GMAIL_USER and GMAIL_APP_PASSWORD)."
            )

        msg = EmailMessage()
        msg["From"] = formataddr((from_name, self._user)) if from_name else self._user
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")

        t0 = time.perf_counter()
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                smtp.starttls()
                smtp.login(self._user, self._password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "smtp", "send_message", error_type=type(exc).__name__, latency_ms=elapsed,
            )
            logger.error("SMTP delivery to %s failed: %s", to, exc)
            raise MailerError(f"Failed to send email: {exc}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("smtp", "send_message", latency_ms=elapsed)
        logger.info("Email sent to %s (subject=%r)", to, subject)
        return msg["Message-ID"]

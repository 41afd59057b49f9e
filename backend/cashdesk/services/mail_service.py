# Overview: Outbound delivery of the daily consolidated report over SMTP.

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailSettings:
    """Snapshot of mail config, safe to hand to a Celery worker without an app context."""
    server: str | None
    port: int
    username: str | None
    password: str | None
    use_tls: bool
    sender: str

    @classmethod
    def from_config(cls, config: Mapping) -> "MailSettings":
        return cls(
            server=config.get("MAIL_SERVER"),
            port=int(config.get("MAIL_PORT", 587)),
            username=config.get("MAIL_USERNAME"),
            password=config.get("MAIL_PASSWORD"),
            use_tls=bool(config.get("MAIL_USE_TLS", True)),
            sender=config.get("MAIL_FROM", "cashdesk@localhost"),
        )


def build_message(
    settings: MailSettings,
    recipients: list[str],
    subject: str,
    body: str,
    attachment: tuple[str, bytes] | None = None,
) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.sender
    message["To"] = ", ".join(recipients)
    message["Subject"] = subject
    message.set_content(body)
    if attachment:
        filename, payload = attachment
        message.add_attachment(payload, maintype="application", subtype="json", filename=filename)
    return message


def send_report(
    settings: MailSettings,
    recipients: list[str],
    subject: str,
    body: str,
    attachment: tuple[str, bytes] | None = None,
) -> None:
    """
    Send one report email. Without a configured MAIL_SERVER the report is
    logged instead of sent.
    """
    if not settings.server:
        logger.info("Mail transport not configured; report %r logged for %s", subject, recipients)
        logger.debug("Report body:\n%s", body)
        return

    message = build_message(settings, recipients, subject, body, attachment)

    with smtplib.SMTP(settings.server, settings.port, timeout=30) as smtp:
        if settings.use_tls:
            smtp.starttls(context=ssl.create_default_context())
        if settings.username:
            smtp.login(settings.username, settings.password or "")
        smtp.send_message(message)

    logger.info("Report %r sent to %s", subject, recipients)


def send_report_safely(
    settings: MailSettings,
    recipients: list[str],
    subject: str,
    body: str,
    attachment: tuple[str, bytes] | None = None,
) -> bool:
    """send_report that logs instead of raising. Returns True on success."""
    try:
        send_report(settings, recipients, subject, body, attachment)
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send report %r to %s", subject, recipients)
        return False

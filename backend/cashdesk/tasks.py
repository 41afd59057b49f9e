"""
Celery tasks for delivering the daily consolidated report.
"""
import logging
import smtplib

from .celery_app import celery_app
from .services import mail_service

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_report_task(
    self,
    settings: dict,
    recipients: list[str],
    subject: str,
    body: str,
    attachment_name: str | None = None,
    attachment_text: str | None = None,
):
    """
    Send one report email, retrying with exponential backoff.

    Arguments are JSON-safe: the mail settings snapshot as a dict and the
    attachment as its file name plus UTF-8 text.
    """
    attachment = None
    if attachment_name:
        attachment = (attachment_name, (attachment_text or "").encode("utf-8"))

    try:
        mail_service.send_report(
            mail_service.MailSettings(**settings), recipients, subject, body, attachment
        )
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Report %r delivery failed: %s", subject, exc)

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        logger.exception("Giving up on report %r for %s", subject, recipients)
        return {"status": "failed", "error": str(exc), "recipients": recipients}

    return {"status": "sent", "recipients": recipients}

# app/services/email/email_service.py
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
import logging

from kombu.exceptions import KombuError

from app.config.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None


class EmailService:
    """Notification sender backed by SMTP. Never raises: failures come back in SendResult."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    def _get_smtp_connection(self):
        """Create and return SMTP connection"""
        if self.settings.EMAIL_USE_TLS:
            server = smtplib.SMTP(self.settings.EMAIL_HOST, self.settings.EMAIL_PORT, timeout=30)
            server.starttls()
        else:
            server = smtplib.SMTP_SSL(self.settings.EMAIL_HOST, self.settings.EMAIL_PORT, timeout=30)

        if self.settings.EMAIL_USERNAME and self.settings.EMAIL_PASSWORD:
            server.login(self.settings.EMAIL_USERNAME, self.settings.EMAIL_PASSWORD)

        return server

    def send(self, to: str, subject: str, body: str) -> SendResult:
        """
        Send one HTML e-mail.

        Args:
            to: Recipient email address
            subject: Email subject
            body: HTML content of the email

        Returns:
            SendResult with success=False and the error text on any failure
        """
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{self.settings.EMAIL_FROM_NAME} <{self.settings.EMAIL_FROM_ADDRESS}>"
        msg['To'] = to
        msg.attach(MIMEText(body, 'html'))

        try:
            server = self._get_smtp_connection()
            try:
                server.sendmail(self.settings.EMAIL_FROM_ADDRESS, [to], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return SendResult(success=False, error=str(e))

        logger.info(f"Email sent successfully to {to}")
        return SendResult(success=True)


class QueuedEmailSender:
    """
    Notification sender for request handlers.

    Hands each message to the email worker instead of talking SMTP inside the
    request. Success means "queued"; delivery failures surface in the worker log.
    """

    def send(self, to: str, subject: str, body: str) -> SendResult:
        from app.tasks.email_tasks import send_notification_email

        try:
            send_notification_email.delay(to, subject, body)
        except (KombuError, OSError) as e:
            logger.error(f"Failed to queue email to {to}: {e}")
            return SendResult(success=False, error=str(e))
        return SendResult(success=True)


def get_notification_sender() -> QueuedEmailSender:
    """Sender dependency for FastAPI routes"""
    return QueuedEmailSender()


def get_reminder_sender() -> EmailService:
    """Direct SMTP sender for the reminder batch, which stamps only delivered reminders"""
    return EmailService()

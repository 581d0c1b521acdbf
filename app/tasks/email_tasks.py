# ===== app/tasks/email_tasks.py =====
import logging

from app.config.celery_config import celery_app
from app.services.email.email_service import EmailService

logger = logging.getLogger(__name__)


@celery_app.task
def send_notification_email(to: str, subject: str, body: str):
    """
    Deliver one notification e-mail queued by a request handler

    A failed send is logged and reported in the task result; it is not
    retried.

    Args:
        to: Recipient email address
        subject: Email subject
        body: HTML content of the email
    """
    logger.info(f"Sending '{subject}' to {to}")
    result = EmailService().send(to, subject, body)
    if not result.success:
        logger.error(f"Notification '{subject}' to {to} was not delivered: {result.error}")
    return {"status": "success" if result.success else "failed", "email": to, "error": result.error}

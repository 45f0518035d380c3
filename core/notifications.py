# core/notifications.py
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.mime.base import MIMEBase
from email import encoders
from typing import List, Literal, Optional

from pydantic import BaseModel

from core.config import settings
from core.logging_config import logger


# -----------------------------------------------------
# 🔔 User-visible notifications (one per action)
# -----------------------------------------------------
class Notification(BaseModel):
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"
    error: Optional[str] = None  # ErrorKind value for failures


class Notifier:
    """
    Collects the notifications produced while serving one caller.
    Routers return the last one in their response body.
    """

    def __init__(self):
        self.history: List[Notification] = []

    def success(self, title: str, description: str) -> Notification:
        return self._record(Notification(title=title, description=description))

    def failure(self, title: str, description: str, error: Optional[str] = None) -> Notification:
        return self._record(
            Notification(title=title, description=description, variant="destructive", error=error)
        )

    @property
    def last(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None

    def _record(self, notification: Notification) -> Notification:
        self.history.append(notification)
        return notification


# -----------------------------------------------------
# 📧 Send email (SMTP)
# -----------------------------------------------------
def smtp_configured() -> bool:
    return all([settings.SMTP_HOST, settings.SMTP_PORT, settings.SMTP_USER, settings.SMTP_PASS])


def send_email(
    subject: str,
    body: str,
    recipients: List[str],
    attachments: Optional[List[dict]] = None,
    html_body: Optional[str] = None
) -> bool:
    """
    Send email via SMTP.

    Args:
        subject: Email subject
        body: Plain text email body
        recipients: List of recipient email addresses
        attachments: List of dicts with 'filename' and 'content' (bytes)
        html_body: Optional HTML email body

    Returns False (after logging) when there is nothing to send or SMTP is
    not configured; raises if the SMTP exchange itself fails.
    """
    if not recipients:
        logger.warning("No recipients specified; skipping email.")
        return False

    if not smtp_configured():
        logger.warning("Email credentials missing; skipping email.")
        return False

    try:
        msg = MIMEMultipart('alternative')
        msg["From"] = settings.SMTP_USER
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject

        msg.attach(MIMEText(body, "plain"))

        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        for attachment in attachments or []:
            part = MIMEBase('application', 'octet-stream')
            part.set_payload(attachment['content'])
            encoders.encode_base64(part)
            part.add_header(
                'Content-Disposition',
                f'attachment; filename= {attachment["filename"]}'
            )
            msg.attach(part)

        with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.login(settings.SMTP_USER, settings.SMTP_PASS)
            server.send_message(msg)

        logger.info(f"Email sent to {', '.join(recipients)}")
        return True

    except Exception as e:
        logger.error(f"Email failed: {e}")
        raise

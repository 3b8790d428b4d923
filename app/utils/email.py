import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from app.config import settings

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return bool(settings.EMAIL_HOST and settings.EMAIL_FROM)


async def send_email_async(subject: str, body: str, to_email: str) -> bool:
    """
    Send one plain-text message over STARTTLS. Returns False when SMTP is not
    configured; delivery errors propagate to the caller.
    """
    if not smtp_configured():
        logger.info("[EMAIL] SMTP not configured, skipped: %s", subject[:50])
        return False

    msg = MIMEMultipart()
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain"))

    await aiosmtplib.send(
        msg,
        hostname=settings.EMAIL_HOST,
        port=settings.EMAIL_PORT,
        username=settings.EMAIL_USER,
        password=settings.EMAIL_PASS,
        start_tls=True,
        timeout=10,
    )
    logger.info("[EMAIL] Sent to %s: %s", to_email, subject)
    return True

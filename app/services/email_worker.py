import asyncio
import logging
from typing import TypedDict

import aiosmtplib
from sqlalchemy import update

from app.database import AsyncSessionLocal
from app.models.email import EmailLog
from app.utils.email import send_email_async
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class EmailJob(TypedDict):
    log_id: int
    subject: str
    body: str
    to_email: str


# Per-process queue; EmailLog rows keep the durable record
email_queue: asyncio.Queue[EmailJob] = asyncio.Queue()


async def _mark(log_id: int, **values) -> None:
    async with AsyncSessionLocal() as db:
        await db.execute(update(EmailLog).where(EmailLog.id == log_id).values(**values))
        await db.commit()


async def process_job(job: EmailJob) -> None:
    try:
        sent = await send_email_async(job["subject"], job["body"], job["to_email"])
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.error("[WORKER] Failed to send email %s: %s", job["log_id"], e)
        await _mark(job["log_id"], status="failed", error_message=str(e))
        return

    if sent:
        await _mark(job["log_id"], status="sent", sent_at=utcnow())
    else:
        await _mark(job["log_id"], status="skipped")


async def email_worker():
    """
    Background worker that pulls jobs from email_queue and sends them.
    Runs until the application shuts down and cancels it.
    """
    logger.info("[WORKER] Background email worker started")
    while True:
        job = await email_queue.get()
        try:
            await process_job(job)
        except Exception:
            logger.exception("[WORKER] Email job %s could not be processed", job["log_id"])
        finally:
            email_queue.task_done()


async def enqueue_email(
    subject: str, body: str, to_email: str, kind: str = "notification", user_id: int | None = None
) -> int:
    """Record the email in the database and hand it to the background worker."""
    async with AsyncSessionLocal() as db:
        new_log = EmailLog(
            user_id=user_id, subject=subject, body=body, to_email=to_email, kind=kind, status="pending"
        )
        db.add(new_log)
        await db.commit()
        log_id = new_log.id

    await email_queue.put({
        "log_id": log_id,
        "subject": subject,
        "body": body,
        "to_email": to_email,
    })
    logger.info("[QUEUE] Enqueued %s email %s: %s", kind, log_id, subject[:30])
    return log_id

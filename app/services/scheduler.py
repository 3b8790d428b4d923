import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError

from app.database import AsyncSessionLocal
from app.services.digests import send_digests
from app.services.lifecycle import generate_recurring_tasks

logger = logging.getLogger(__name__)


async def run_recurring_generation():
    logger.info("[SCHEDULER] Starting recurring task generation...")
    async with AsyncSessionLocal() as db:
        try:
            await generate_recurring_tasks(db)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("[SCHEDULER] Error during recurring generation: %s", e)


async def run_email_digests():
    logger.info("[SCHEDULER] Starting email digest check...")
    async with AsyncSessionLocal() as db:
        try:
            await send_digests(db)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("[SCHEDULER] Error during email digests: %s", e)


def setup_scheduler():
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_recurring_generation,
        trigger=CronTrigger(hour=0, minute=5),
    )
    scheduler.add_job(
        run_email_digests,
        trigger=CronTrigger(minute=0),  # hourly; users are matched by local hour
    )
    scheduler.start()
    return scheduler

"""Create all tables on the configured database: python -m app.scripts.init_db"""
import asyncio
import logging

from app.database import Base, engine
from app.logging_config import setup_logging
from app.models import email, notifications, tasks, user  # noqa: F401  (register tables)

logger = logging.getLogger(__name__)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_db())

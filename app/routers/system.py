import logging
import os
import platform
import time
from datetime import timedelta

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.database import get_db
from app.dependencies import get_current_user
from app.models.tasks import Category, Status, Tag, Task
from app.models.user import User as UserModel
from app.utils.cache import query_cache
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])

STARTED_AT = time.monotonic()


@router.get("/")
def root():
    return {"message": "DueSync API running"}


@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    started = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "timestamp": utcnow().isoformat(),
                "checks": {"database": {"status": "down", "error": str(e)}},
            },
        )

    latency_ms = round((time.perf_counter() - started) * 1000, 1)
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 1),
        "checks": {"database": {"status": "up", "latency": f"{latency_ms}ms"}},
    }


@router.get("/metrics")
async def metrics(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    async def count(model_column, *filters) -> int:
        result = await db.execute(select(func.count(model_column)).filter(*filters))
        return result.scalar() or 0

    yesterday = utcnow() - timedelta(days=1)
    return {
        "timestamp": utcnow().isoformat(),
        "application": {
            "totalUsers": await count(UserModel.user_id),
            "totalTasks": await count(Task.task_id),
            "tasksByStatus": {
                "completed": await count(Task.task_id, Task.status == Status.COMPLETED),
                "pending": await count(Task.task_id, Task.status == Status.PENDING),
                "archived": await count(Task.task_id, Task.status == Status.ARCHIVED),
            },
            "recurringTasks": await count(Task.task_id, Task.is_recurring.is_(True)),
            "syncedToCalendar": await count(Task.task_id, Task.google_event_id.isnot(None)),
            "totalCategories": await count(Category.category_id),
            "totalTags": await count(Tag.tag_id),
        },
        "activity": {
            "tasksCreatedLast24h": await count(Task.task_id, Task.created_at >= yesterday),
            "tasksCompletedLast24h": await count(
                Task.task_id, Task.status == Status.COMPLETED, Task.completed_at >= yesterday
            ),
        },
        "system": {
            "uptime": round(time.monotonic() - STARTED_AT, 1),
            "pid": os.getpid(),
            "python": platform.python_version(),
            "platform": platform.system().lower(),
            "cachedQueries": len(query_cache),
        },
    }

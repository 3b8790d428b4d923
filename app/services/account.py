"""
Account erasure and data export.

Deletion runs DELETION_STEPS in order inside one transaction and commits
once; any failing step rolls the whole thing back.
"""
import logging
from typing import Callable

import pandas as pd
from sqlalchemy import delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.expression import Executable

from app.exceptions import InternalError
from app.models.email import EmailLog
from app.models.notifications import NotificationPreference
from app.models.tasks import Category, Status, Tag, Task, TaskTag
from app.models.user import Account, Session, User
from app.utils.cache import query_cache
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DeletionStep = tuple[str, Callable[[int], Executable]]

DELETION_STEPS: list[DeletionStep] = [
    ("task_tags", lambda uid: delete(TaskTag).where(
        TaskTag.task_id.in_(select(Task.task_id).where(Task.user_id == uid))
    )),
    ("tasks", lambda uid: delete(Task).where(Task.user_id == uid)),
    ("categories", lambda uid: delete(Category).where(Category.user_id == uid)),
    ("tags", lambda uid: delete(Tag).where(Tag.user_id == uid)),
    ("notification_preferences", lambda uid: delete(NotificationPreference).where(
        NotificationPreference.user_id == uid
    )),
    # Rows queued before they carried a user_id are matched by address
    ("email_logs", lambda uid: delete(EmailLog).where(or_(
        EmailLog.user_id == uid,
        EmailLog.to_email.in_(select(User.email).where(User.user_id == uid)),
    ))),
    ("sessions", lambda uid: delete(Session).where(Session.user_id == uid)),
    ("accounts", lambda uid: delete(Account).where(Account.user_id == uid)),
    ("user", lambda uid: delete(User).where(User.user_id == uid)),
]


async def delete_account(db: AsyncSession, user_id: int) -> dict:
    logger.info("[ACCOUNT] Starting deletion for user %s", user_id)
    try:
        for name, build in DELETION_STEPS:
            result = await db.execute(build(user_id))
            logger.debug("[ACCOUNT] %s: %s rows", name, result.rowcount)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("[ACCOUNT] Deletion failed for user %s: %s", user_id, exc)
        raise InternalError("Failed to delete account", details=str(exc)) from exc

    query_cache.invalidate_user(user_id)
    logger.info("[ACCOUNT] Deleted user %s", user_id)
    return {
        "message": "Account and all associated data have been permanently deleted",
        "deleted_at": utcnow(),
    }


# ---------- export ----------

def _task_row(task: Task) -> dict:
    return {
        "id": task.task_id,
        "title": task.title,
        "description": task.description,
        "dueDate": task.due_date.isoformat(),
        "dueTime": task.due_time,
        "priority": task.priority.value,
        "status": task.status.value,
        "isRecurring": task.is_recurring,
        "recurringPattern": task.recurring_pattern.value if task.recurring_pattern else None,
        "estimatedTime": task.estimated_time,
        "completedAt": task.completed_at.isoformat() if task.completed_at else None,
        "createdAt": task.created_at.isoformat() if task.created_at else None,
        "updatedAt": task.updated_at.isoformat() if task.updated_at else None,
        "category": {"name": task.category.name, "color": task.category.color} if task.category else None,
        "tags": [{"name": t.name, "color": t.color} for t in task.tags],
    }


def _label_row(label, pk: int) -> dict:
    return {
        "id": pk,
        "name": label.name,
        "color": label.color,
        "createdAt": label.created_at.isoformat() if label.created_at else None,
    }


async def export_user_data(db: AsyncSession, user: User) -> dict:
    result = await db.execute(
        select(Task)
        .options(selectinload(Task.category), selectinload(Task.tags))
        .filter(Task.user_id == user.user_id)
        .order_by(Task.task_id)
    )
    tasks = result.scalars().all()
    categories = (await db.execute(
        select(Category).filter(Category.user_id == user.user_id).order_by(Category.name)
    )).scalars().all()
    tags = (await db.execute(
        select(Tag).filter(Tag.user_id == user.user_id).order_by(Tag.name)
    )).scalars().all()
    prefs = (await db.execute(
        select(NotificationPreference).filter(NotificationPreference.user_id == user.user_id)
    )).scalars().first()

    logger.info("[ACCOUNT] User %s exported their data", user.user_id)
    return {
        "exportedAt": utcnow().isoformat(),
        "profile": {
            "id": user.user_id,
            "name": user.name,
            "email": user.email,
            "timezone": user.timezone,
            "createdAt": user.created_at.isoformat() if user.created_at else None,
            "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
        },
        "tasks": [_task_row(t) for t in tasks],
        "categories": [_label_row(c, c.category_id) for c in categories],
        "tags": [_label_row(t, t.tag_id) for t in tags],
        "notificationPreferences": {
            "dailyEmailEnabled": prefs.daily_email_enabled,
            "dailyEmailTime": prefs.daily_email_time,
            "weeklyEmailEnabled": prefs.weekly_email_enabled,
            "weeklyEmailDay": prefs.weekly_email_day.value,
            "weeklyEmailTime": prefs.weekly_email_time,
            "pushNotificationsEnabled": prefs.push_notifications_enabled,
            "reminderMinutesBefore": prefs.reminder_minutes_before,
        } if prefs else None,
        "statistics": {
            "totalTasks": len(tasks),
            "completedTasks": sum(1 for t in tasks if t.status == Status.COMPLETED),
            "pendingTasks": sum(1 for t in tasks if t.status == Status.PENDING),
            "archivedTasks": sum(1 for t in tasks if t.status == Status.ARCHIVED),
            "totalCategories": len(categories),
            "totalTags": len(tags),
        },
    }


EXPORT_COLUMNS = [
    "id", "title", "description", "dueDate", "dueTime", "priority", "status",
    "isRecurring", "recurringPattern", "estimatedTime", "category", "tags",
    "completedAt", "createdAt", "updatedAt",
]


def tasks_to_csv(export: dict) -> str:
    """Flatten the exported task list into one CSV row per task."""
    rows = []
    for task in export["tasks"]:
        row = dict(task)
        row["category"] = task["category"]["name"] if task["category"] else None
        row["tags"] = ";".join(t["name"] for t in task["tags"])
        rows.append(row)

    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    return df.to_csv(index=False)

"""
Task lifecycle: status transitions, recurrence expansion, calendar linkage
and the "today" view.

Every path that changes a task's status goes through `apply_status`, which
keeps `completed_at` set exactly while the task is COMPLETED.
"""
import logging
from datetime import date, datetime, timedelta

from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.exceptions import ConflictError, UpstreamFailure, ValidationFailed
from app.models.tasks import Priority, RecurringPattern, Status, Task, TaskTag
from app.models.user import User
from app.schemas.task import TaskUpdate
from app.services.calendar import CalendarSyncAdapter
from app.services.scope import UserScope
from app.services.tasks import (
    PRIORITY_RANK,
    TASK_LOAD_OPTIONS,
    check_labels_owned,
    get_task_by_id,
    invalidate_task_views,
)
from app.utils.timeutils import add_months, local_day_bounds, local_today, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[Status, set[Status]] = {
    Status.PENDING: {Status.PENDING, Status.COMPLETED, Status.ARCHIVED},
    Status.COMPLETED: {Status.PENDING, Status.COMPLETED, Status.ARCHIVED},
    Status.ARCHIVED: {Status.ARCHIVED, Status.PENDING},
}

# Fields that appear in the calendar event body
CALENDAR_FIELDS = {"title", "description", "due_date", "due_time", "estimated_time"}


# ── Status transitions ──────────────────────────────────

def apply_status(task: Task, new_status: Status, now: datetime | None = None) -> bool:
    """
    Move `task` to `new_status`. Returns True when the task has just become
    COMPLETED, which is the trigger for recurrence expansion.
    """
    current = task.status or Status.PENDING
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise ValidationFailed(
            f"Cannot change task status from {current.value} to {new_status.value}",
            details={"from": current.value, "to": new_status.value},
        )

    task.status = new_status
    if new_status == Status.COMPLETED:
        if current != Status.COMPLETED or task.completed_at is None:
            task.completed_at = now or utcnow()
        return current != Status.COMPLETED

    task.completed_at = None
    return False


# ── Recurrence ──────────────────────────────────────────

def next_due_date(due: date, pattern: RecurringPattern) -> date:
    if pattern == RecurringPattern.DAILY:
        return due + timedelta(days=1)
    if pattern == RecurringPattern.WEEKLY:
        return due + timedelta(weeks=1)
    if pattern == RecurringPattern.MONTHLY:
        return add_months(due, 1)
    raise ValueError(f"Unknown recurring pattern: {pattern}")


async def _pending_instance_exists(db: AsyncSession, task: Task, next_due: date) -> bool:
    result = await db.execute(
        select(Task.task_id).filter(
            Task.user_id == task.user_id,
            Task.title == task.title,
            Task.is_recurring.is_(True),
            Task.recurring_pattern == task.recurring_pattern,
            Task.status == Status.PENDING,
            Task.due_date >= next_due,
        ).limit(1)
    )
    return result.scalar() is not None


async def spawn_next_occurrence(db: AsyncSession, task: Task) -> Task | None:
    """Create the next PENDING occurrence of a recurring task unless the series already has one."""
    if not task.is_recurring or task.recurring_pattern is None:
        return None

    next_due = next_due_date(task.due_date, task.recurring_pattern)
    if await _pending_instance_exists(db, task, next_due):
        return None

    result = await db.execute(select(TaskTag.tag_id).filter(TaskTag.task_id == task.task_id))
    tag_ids = result.scalars().all()

    occurrence = Task(
        user_id=task.user_id,
        title=task.title,
        description=task.description,
        due_date=next_due,
        due_time=task.due_time,
        priority=task.priority,
        status=Status.PENDING,
        is_recurring=True,
        recurring_pattern=task.recurring_pattern,
        estimated_time=task.estimated_time,
        category_id=task.category_id,
    )
    db.add(occurrence)
    await db.flush()
    for tag_id in tag_ids:
        db.add(TaskTag(task_id=occurrence.task_id, tag_id=tag_id))
    await db.flush()

    logger.info(
        "Generated occurrence %s of task %s due %s (%s)",
        occurrence.task_id, task.task_id, next_due, task.recurring_pattern.value,
    )
    return occurrence


async def generate_recurring_tasks(db: AsyncSession, today: date | None = None) -> dict:
    """
    Backfill job: make sure every completed recurring task whose next due
    date has arrived has a pending successor.
    """
    today = today or utcnow().date()
    result = await db.execute(
        select(Task.task_id).filter(
            Task.status == Status.COMPLETED,
            Task.is_recurring.is_(True),
            Task.recurring_pattern.isnot(None),
        ).order_by(Task.completed_at.desc())
    )
    completed = result.scalars().all()

    generated, skipped, errors = [], [], []
    for task_id in completed:
        # Reloaded per task: a rollback below expires everything in the session
        task = await db.get(Task, task_id, populate_existing=True)
        next_due = next_due_date(task.due_date, task.recurring_pattern)
        if next_due > today:
            skipped.append({"taskId": task_id, "reason": "Next due date is in the future"})
            continue
        try:
            occurrence = await spawn_next_occurrence(db, task)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Failed to generate occurrence for task %s: %s", task_id, exc)
            errors.append({"taskId": task_id, "error": str(exc)})
            continue
        if occurrence is None:
            skipped.append({"taskId": task_id, "reason": "Pending instance already exists"})
        else:
            generated.append({
                "originalTaskId": task_id,
                "newTaskId": occurrence.task_id,
                "dueDate": occurrence.due_date.isoformat(),
            })
            invalidate_task_views(task.user_id)

    summary = {
        "totalCompleted": len(completed),
        "generated": len(generated),
        "skipped": len(skipped),
        "errors": len(errors),
    }
    logger.info("Recurring task generation completed: %s", summary)
    return {"summary": summary, "generatedTasks": generated, "errors": errors}


# ── Edit / delete ───────────────────────────────────────

async def update_task(
    db: AsyncSession, user: User, task_id: int, task_data: TaskUpdate, adapter: CalendarSyncAdapter
) -> Task:
    """
    Partial update. Status changes go through `apply_status`; completing a
    recurring task spawns its next occurrence. A synced task whose event
    fields changed is patched in the calendar before anything is committed.
    """
    scope = UserScope(db, user.user_id)
    task = await get_task_by_id(scope, task_id)

    changes = task_data.model_dump(exclude_unset=True)
    tag_ids = changes.pop("tag_ids", None)
    new_status = changes.pop("status", None)
    await check_labels_owned(scope, changes.get("category_id"), tag_ids)

    calendar_dirty = False
    for field, value in changes.items():
        if getattr(task, field) != value:
            setattr(task, field, value)
            calendar_dirty = calendar_dirty or field in CALENDAR_FIELDS

    if task.is_recurring and task.recurring_pattern is None:
        raise ValidationFailed("recurringPattern is required for recurring tasks")
    if not task.is_recurring:
        task.recurring_pattern = None

    just_completed = apply_status(task, new_status) if new_status is not None else False

    if tag_ids is not None:
        await db.execute(delete(TaskTag).where(TaskTag.task_id == task.task_id))
        for tag_id in dict.fromkeys(tag_ids):
            db.add(TaskTag(task_id=task.task_id, tag_id=tag_id))

    if task.google_event_id and calendar_dirty:
        try:
            await adapter.update_event(db, user, task)
        except UpstreamFailure:
            await db.rollback()
            raise

    if just_completed and task.is_recurring:
        await db.flush()
        await spawn_next_occurrence(db, task)

    await db.commit()
    invalidate_task_views(user.user_id)
    return await get_task_by_id(scope, task_id)


async def delete_task(db: AsyncSession, user: User, task_id: int, adapter: CalendarSyncAdapter) -> None:
    scope = UserScope(db, user.user_id)
    task = await get_task_by_id(scope, task_id)
    if task.google_event_id:
        # Remote first; if it fails the task stays
        await adapter.delete_event(db, user, task.google_event_id)

    await scope.delete(Task, task_id)
    await db.commit()
    invalidate_task_views(user.user_id)
    logger.info("Task %s deleted for user %s", task_id, user.user_id)


# ── Calendar linkage ────────────────────────────────────

async def _swap_event_id(db: AsyncSession, user_id: int, task_id: int, expected: str | None, new: str | None) -> bool:
    """Compare-and-swap on google_event_id; False when another request changed it first."""
    current_matches = Task.google_event_id.is_(None) if expected is None else Task.google_event_id == expected
    result = await db.execute(
        update(Task)
        .where(Task.task_id == task_id, Task.user_id == user_id, current_matches)
        .values(google_event_id=new)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _discard_orphan_event(db: AsyncSession, user: User, adapter: CalendarSyncAdapter, event_id: str) -> None:
    try:
        await adapter.delete_event(db, user, event_id)
    except UpstreamFailure as exc:
        logger.error("[CALENDAR] Orphaned event %s left in calendar: %s", event_id, exc.details or exc.error)


async def toggle_calendar_sync(
    db: AsyncSession, user: User, task_id: int, adapter: CalendarSyncAdapter
) -> tuple[Task, bool]:
    """
    Unsynced task: create a remote event and store its id. Synced task:
    delete the remote event and clear the id. The stored id changes only
    after the remote call succeeded.
    """
    scope = UserScope(db, user.user_id)
    task = await get_task_by_id(scope, task_id)
    previous = task.google_event_id

    if previous is None:
        event = await adapter.create_event(db, user, task)
        new_id = event["id"]
    else:
        await adapter.delete_event(db, user, previous)
        new_id = None

    if not await _swap_event_id(db, user.user_id, task_id, previous, new_id):
        await db.rollback()
        if new_id is not None:
            await _discard_orphan_event(db, user, adapter, new_id)
        raise ConflictError("Task sync state changed by another request, please retry")

    await db.commit()
    return await get_task_by_id(scope, task_id), new_id is not None


async def unsync_task(db: AsyncSession, user: User, task_id: int, adapter: CalendarSyncAdapter) -> Task:
    scope = UserScope(db, user.user_id)
    task = await get_task_by_id(scope, task_id)
    if task.google_event_id is None:
        raise ValidationFailed("Task is not synced with Google Calendar")

    task, _ = await toggle_calendar_sync(db, user, task_id, adapter)
    return task


# ── Today view ──────────────────────────────────────────

async def list_today(db: AsyncSession, user: User, now: datetime | None = None) -> dict:
    """
    Pending tasks due on the caller's local date, most urgent first:
    priority HIGH→LOW, then due time (untimed last), then creation order.
    """
    scope = UserScope(db, user.user_id)
    today = local_today(user.timezone, now)

    result = await db.execute(
        scope.select(Task, *TASK_LOAD_OPTIONS)
        .filter(Task.status == Status.PENDING, Task.due_date == today)
        .order_by(
            PRIORITY_RANK.desc(),
            Task.due_time.is_(None),
            Task.due_time.asc(),
            Task.created_at.asc(),
            Task.task_id.asc(),
        )
    )
    tasks = result.scalars().all()

    day_start, day_end = local_day_bounds(user.timezone, today)
    result = await db.execute(
        select(func.count(Task.task_id)).filter(
            Task.user_id == user.user_id,
            Task.status == Status.COMPLETED,
            Task.completed_at >= day_start,
            Task.completed_at < day_end,
        )
    )
    completed = result.scalar() or 0

    return {
        "tasks": tasks,
        "total": len(tasks),
        "stats": {
            "pending": len(tasks),
            "completed": completed,
            "high_priority": sum(1 for t in tasks if t.priority == Priority.HIGH),
            "total_estimated_time": sum(t.estimated_time or 0 for t in tasks),
        },
    }

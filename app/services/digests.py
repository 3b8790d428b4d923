"""
Daily and weekly task summary emails.

`send_digests` runs hourly (cron endpoint or in-process scheduler) and picks
the users whose preferred send hour, in their own timezone, is the current
hour.
"""
import logging
from datetime import date, datetime, timedelta

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from app.models.notifications import NotificationPreference, WeekDay
from app.models.tasks import Status, Task
from app.models.user import User
from app.services.email_worker import enqueue_email
from app.services.tasks import PRIORITY_RANK
from app.utils.timeutils import get_zone, local_day_bounds, parse_hhmm, utcnow

logger = logging.getLogger(__name__)

WEEK_DAYS = list(WeekDay)  # Monday first, matches date.weekday()


def _display_name(user: User) -> str:
    return user.name or user.email.split("@")[0]


def _task_line(task: Task) -> str:
    parts = [f"- [{task.priority.value}] {task.title}"]
    if task.due_time:
        parts.append(f"at {task.due_time}")
    if task.category:
        parts.append(f"({task.category.name})")
    return " ".join(parts)


async def build_daily_digest(db: AsyncSession, user: User, today: date) -> tuple[str, str] | None:
    result = await db.execute(
        select(Task)
        .options(selectinload(Task.category))
        .filter(Task.user_id == user.user_id, Task.status == Status.PENDING, Task.due_date == today)
        .order_by(PRIORITY_RANK.desc(), Task.due_time.is_(None), Task.due_time.asc())
    )
    tasks = result.scalars().all()
    if not tasks:
        return None

    count = len(tasks)
    subject = f"You have {count} task{'s' if count != 1 else ''} today"
    body = (
        f"Good morning, {_display_name(user)}!\n\n"
        f"Your tasks for {today.strftime('%A, %B %d')}:\n\n"
        + "\n".join(_task_line(t) for t in tasks)
        + "\n\nStart with your high-priority tasks."
    )
    return subject, body


async def build_weekly_digest(db: AsyncSession, user: User, today: date) -> tuple[str, str] | None:
    week_start = today - timedelta(days=today.weekday())
    week_end = week_start + timedelta(days=6)
    start_utc, _ = local_day_bounds(user.timezone, week_start)
    _, end_utc = local_day_bounds(user.timezone, week_end)

    async def count(*filters) -> int:
        result = await db.execute(
            select(func.count(Task.task_id)).filter(Task.user_id == user.user_id, *filters)
        )
        return result.scalar() or 0

    completed = await count(
        Task.status == Status.COMPLETED, Task.completed_at >= start_utc, Task.completed_at < end_utc
    )
    pending = await count(
        Task.status == Status.PENDING, Task.due_date >= week_start, Task.due_date <= week_end
    )
    overdue = await count(Task.status == Status.PENDING, Task.due_date < today)
    if completed + pending + overdue == 0:
        return None

    result = await db.execute(
        select(Task)
        .options(selectinload(Task.category))
        .filter(
            Task.user_id == user.user_id,
            Task.status == Status.PENDING,
            Task.due_date >= today,
            Task.due_date <= week_end,
        )
        .order_by(Task.due_date.asc(), PRIORITY_RANK.desc())
        .limit(5)
    )
    upcoming = result.scalars().all()

    subject = f"Your weekly summary: {completed} done, {pending} to go"
    lines = [
        f"Hi {_display_name(user)},",
        "",
        f"Week of {week_start.strftime('%B %d')}:",
        f"  Completed: {completed}",
        f"  Pending:   {pending}",
        f"  Overdue:   {overdue}",
    ]
    if upcoming:
        lines += ["", "Coming up:"] + [f"{_task_line(t)} on {t.due_date.isoformat()}" for t in upcoming]
    return subject, "\n".join(lines)


async def send_digests(db: AsyncSession, now: datetime | None = None) -> dict:
    now = now or utcnow()
    result = await db.execute(
        select(NotificationPreference, User)
        .join(User, User.user_id == NotificationPreference.user_id)
        .filter(
            NotificationPreference.daily_email_enabled.is_(True)
            | NotificationPreference.weekly_email_enabled.is_(True)
        )
    )
    rows = result.all()

    stats = {"dailySent": 0, "dailySkipped": 0, "weeklySent": 0, "weeklySkipped": 0}
    for prefs, user in rows:
        local_now = now.astimezone(get_zone(user.timezone))
        today = local_now.date()

        if prefs.daily_email_enabled and parse_hhmm(prefs.daily_email_time).hour == local_now.hour:
            digest = await build_daily_digest(db, user, today)
            if digest:
                await enqueue_email(*digest, to_email=user.email, kind="daily", user_id=user.user_id)
                stats["dailySent"] += 1
            else:
                stats["dailySkipped"] += 1

        if (
            prefs.weekly_email_enabled
            and prefs.weekly_email_day == WEEK_DAYS[today.weekday()]
            and parse_hhmm(prefs.weekly_email_time).hour == local_now.hour
        ):
            digest = await build_weekly_digest(db, user, today)
            if digest:
                await enqueue_email(*digest, to_email=user.email, kind="weekly", user_id=user.user_id)
                stats["weeklySent"] += 1
            else:
                stats["weeklySkipped"] += 1

    summary = {"timestamp": now.isoformat(), "totalUsers": len(rows), **stats}
    logger.info("[DIGEST] Email notification check completed: %s", summary)
    return summary


async def send_test_email(user: User) -> int:
    return await enqueue_email(
        "DueSync test email",
        f"Hi {_display_name(user)},\n\nEmail notifications are working.",
        to_email=user.email,
        kind="test",
        user_id=user.user_id,
    )

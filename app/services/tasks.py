import logging
from datetime import date

from sqlalchemy import case, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from app.exceptions import ValidationFailed
from app.models.tasks import Category, Priority, Status, Tag, Task, TaskTag
from app.models.user import User
from app.schemas.task import TaskCreate
from app.services.scope import UserScope
from app.utils.cache import CATEGORIES, TAGS, query_cache

logger = logging.getLogger(__name__)

TASK_LOAD_OPTIONS = (selectinload(Task.category), selectinload(Task.tags))

PRIORITY_RANK = case(
    (Task.priority == Priority.HIGH, 3),
    (Task.priority == Priority.MEDIUM, 2),
    else_=1,
)

STATUS_RANK = case(
    (Task.status == Status.PENDING, 0),
    (Task.status == Status.COMPLETED, 1),
    else_=2,
)


async def get_task_by_id(scope: UserScope, task_id: int) -> Task:
    return await scope.get(Task, task_id, *TASK_LOAD_OPTIONS, label="Task")


def invalidate_task_views(user_id: int) -> None:
    # Category and tag listings carry task counts
    query_cache.invalidate(user_id, CATEGORIES, TAGS)


async def check_labels_owned(scope: UserScope, category_id: int | None, tag_ids) -> None:
    if category_id is not None:
        await scope.require_owned(Category, [category_id], "Category")
    if tag_ids:
        await scope.require_owned(Tag, tag_ids, "Tag")


async def create_task(db: AsyncSession, user: User, task_data: TaskCreate) -> Task:
    scope = UserScope(db, user.user_id)
    await check_labels_owned(scope, task_data.category_id, task_data.tag_ids)

    new_task = Task(
        user_id=user.user_id,
        title=task_data.title,
        description=task_data.description,
        due_date=task_data.due_date,
        due_time=task_data.due_time,
        priority=task_data.priority,
        status=Status.PENDING,
        completed_at=None,
        is_recurring=task_data.is_recurring,
        recurring_pattern=task_data.recurring_pattern if task_data.is_recurring else None,
        estimated_time=task_data.estimated_time,
        category_id=task_data.category_id,
    )
    db.add(new_task)
    await db.flush()

    for tag_id in dict.fromkeys(task_data.tag_ids):
        db.add(TaskTag(task_id=new_task.task_id, tag_id=tag_id))

    await db.commit()
    invalidate_task_views(user.user_id)
    logger.info("Task %s created for user %s", new_task.task_id, user.user_id)
    return await get_task_by_id(scope, new_task.task_id)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def list_tasks(
    db: AsyncSession,
    user: User,
    *,
    status: Status | None = None,
    priority: Priority | None = None,
    category_id: int | None = None,
    tag_id: int | None = None,
    search: str | None = None,
    on_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Task], int]:
    """Filtered page of the caller's tasks plus the unpaged total."""
    if start_date and end_date and start_date > end_date:
        raise ValidationFailed("startDate must not be after endDate")

    scope = UserScope(db, user.user_id)
    filters = []
    if status is not None:
        filters.append(Task.status == status)
    if priority is not None:
        filters.append(Task.priority == priority)
    if category_id is not None:
        filters.append(Task.category_id == category_id)
    if tag_id is not None:
        filters.append(Task.task_id.in_(select(TaskTag.task_id).filter(TaskTag.tag_id == tag_id)))
    if search:
        pattern = _like_pattern(search.strip())
        filters.append(
            Task.title.ilike(pattern, escape="\\") | Task.description.ilike(pattern, escape="\\")
        )
    if on_date is not None:
        filters.append(Task.due_date == on_date)
    else:
        if start_date is not None:
            filters.append(Task.due_date >= start_date)
        if end_date is not None:
            filters.append(Task.due_date <= end_date)

    count_stmt = select(func.count(Task.task_id)).filter(Task.user_id == user.user_id, *filters)
    total = (await db.execute(count_stmt)).scalar() or 0

    result = await db.execute(
        scope.select(Task, *TASK_LOAD_OPTIONS)
        .filter(*filters)
        .order_by(STATUS_RANK, PRIORITY_RANK.desc(), Task.due_date.asc(), Task.task_id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return result.scalars().all(), total

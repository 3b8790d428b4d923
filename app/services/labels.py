"""Categories and tags: two user-owned label tables with the same shape and rules."""
import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.exceptions import ConflictError, NotFoundOrNotOwned
from app.models.tasks import Category, Tag, Task, TaskTag
from app.schemas.labels import LabelCreate, LabelUpdate
from app.services.scope import UserScope
from app.utils.cache import CATEGORIES, TAGS, query_cache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LabelKind:
    model: type
    label: str
    cache_kind: str
    task_count: Callable[[], Any]
    order_by: tuple
    limit: int | None = None


CATEGORY = LabelKind(
    model=Category,
    label="Category",
    cache_kind=CATEGORIES,
    task_count=lambda: (
        select(func.count(Task.task_id))
        .where(Task.category_id == Category.category_id)
        .correlate(Category)
        .scalar_subquery()
    ),
    order_by=(Category.created_at.desc(), Category.category_id.desc()),
)

TAG = LabelKind(
    model=Tag,
    label="Tag",
    cache_kind=TAGS,
    task_count=lambda: (
        select(func.count(TaskTag.task_id))
        .where(TaskTag.tag_id == Tag.tag_id)
        .correlate(Tag)
        .scalar_subquery()
    ),
    order_by=(Tag.created_at.desc(), Tag.tag_id.desc()),
    limit=100,
)


def _as_dict(row, task_count: int) -> dict:
    data = {attr.key: getattr(row, attr.key) for attr in row.__mapper__.column_attrs}
    data["task_count"] = task_count or 0
    return data


def _duplicate(kind: LabelKind) -> ConflictError:
    return ConflictError(f"A {kind.label.lower()} with this name already exists")


async def list_labels(db: AsyncSession, user_id: int, kind: LabelKind) -> list[dict]:
    cached = query_cache.get(user_id, kind.cache_kind)
    if cached is not None:
        return cached

    scope = UserScope(db, user_id)
    stmt = scope.select(kind.model).add_columns(kind.task_count()).order_by(*kind.order_by)
    if kind.limit:
        stmt = stmt.limit(kind.limit)
    result = await db.execute(stmt)
    labels = [_as_dict(row, count) for row, count in result.all()]

    query_cache.set(user_id, kind.cache_kind, labels)
    return labels


async def get_label(db: AsyncSession, user_id: int, kind: LabelKind, pk: int) -> dict:
    scope = UserScope(db, user_id)
    pk_col = scope.pk_column(kind.model)
    result = await db.execute(
        scope.select(kind.model)
        .add_columns(kind.task_count())
        .where(pk_col == pk)
        .execution_options(populate_existing=True)
    )
    row = result.first()
    if row is None:
        raise NotFoundOrNotOwned(f"{kind.label} not found")
    return _as_dict(row[0], row[1])


async def create_label(db: AsyncSession, user_id: int, kind: LabelKind, data: LabelCreate) -> dict:
    label = kind.model(user_id=user_id, name=data.name, color=data.color)
    db.add(label)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _duplicate(kind)

    query_cache.invalidate(user_id, kind.cache_kind)
    logger.info("%s %r created for user %s", kind.label, data.name, user_id)
    return _as_dict(label, 0)


async def update_label(db: AsyncSession, user_id: int, kind: LabelKind, pk: int, data: LabelUpdate) -> dict:
    values = data.model_dump(exclude_none=True)
    if values:
        scope = UserScope(db, user_id)
        try:
            updated = await scope.update(kind.model, pk, values)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise _duplicate(kind)
        if not updated:
            raise NotFoundOrNotOwned(f"{kind.label} not found")
        query_cache.invalidate(user_id, kind.cache_kind)
    return await get_label(db, user_id, kind, pk)


async def delete_label(db: AsyncSession, user_id: int, kind: LabelKind, pk: int) -> None:
    """Tasks keep existing: categories are unset on them, tag links are dropped."""
    scope = UserScope(db, user_id)
    deleted = await scope.delete(kind.model, pk)
    if not deleted:
        await db.rollback()
        raise NotFoundOrNotOwned(f"{kind.label} not found")
    await db.commit()
    query_cache.invalidate(user_id, kind.cache_kind)
    logger.info("%s %s deleted for user %s", kind.label, pk, user_id)

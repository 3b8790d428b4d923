from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from app.exceptions import NotFoundOrNotOwned


class UserScope:
    """
    Data access bound to one caller. Every statement built here carries a
    `user_id = :caller` predicate, so a row owned by someone else behaves
    exactly like a row that does not exist.
    """

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    @staticmethod
    def pk_column(model):
        return model.__mapper__.primary_key[0]

    def select(self, model, *options) -> Select:
        stmt = select(model).where(model.user_id == self.user_id)
        if options:
            stmt = stmt.options(*options)
        return stmt

    async def get(self, model, pk: int, *options, label: str | None = None):
        stmt = self.select(model, *options).where(self.pk_column(model) == pk)
        if options:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        row = result.scalars().first()
        if row is None:
            raise NotFoundOrNotOwned(f"{label or model.__name__} not found")
        return row

    async def update(self, model, pk: int, values: dict) -> int:
        result = await self.db.execute(
            update(model)
            .where(self.pk_column(model) == pk, model.user_id == self.user_id)
            .values(**values)
        )
        return result.rowcount

    async def delete(self, model, pk: int) -> int:
        result = await self.db.execute(
            delete(model).where(self.pk_column(model) == pk, model.user_id == self.user_id)
        )
        return result.rowcount

    async def require_owned(self, model, ids, label: str) -> None:
        """Raise NotFound unless every id in `ids` belongs to the caller."""
        wanted = set(ids)
        if not wanted:
            return
        result = await self.db.execute(
            select(self.pk_column(model)).where(self.pk_column(model).in_(wanted), model.user_id == self.user_id)
        )
        missing = wanted - set(result.scalars().all())
        if missing:
            raise NotFoundOrNotOwned(f"{label} not found", details={"ids": sorted(missing)})

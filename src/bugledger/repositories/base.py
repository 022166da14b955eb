"""Base repository with common CRUD operations."""

from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bugledger.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository:
    """Generic async repository for SQLAlchemy models.

    Reads use ``populate_existing`` so rows already in the session's identity
    map are refreshed with whatever SQL-level updates have been applied.
    """

    def __init__(self, session: AsyncSession, model_class: type[T], pk_field: str):
        self.session = session
        self.model_class = model_class
        self.pk_field = pk_field

    @property
    def _pk(self):
        return getattr(self.model_class, self.pk_field)

    async def _scalars(self, stmt) -> list[T]:
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def get_by_id(self, pk_value: str) -> T | None:
        """Get a single record by primary key."""
        stmt = select(self.model_class).where(self._pk == pk_value)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def create(self, **kwargs: Any) -> T:
        """Create and persist a new record."""
        row = self.model_class(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def update_by_id(self, pk_value: str, **kwargs: Any) -> T | None:
        """Apply ``kwargs`` to the record, returning None when it does not exist."""
        row = await self.get_by_id(pk_value)
        if row is None:
            return None
        for key, value in kwargs.items():
            setattr(row, key, value)
        await self.session.flush()
        return row

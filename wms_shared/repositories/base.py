from typing import Generic, TypeVar, Optional, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from wms_shared.database.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Base repository class with common operations keyed by primary key column."""

    def __init__(self, session: AsyncSession, model: type[T], key_column: str = "id"):
        self.session = session
        self.model = model
        self.key_column = getattr(model, key_column)

    async def get_by_id(self, id: Any) -> Optional[T]:
        """Get a record by primary key."""
        stmt = select(self.model).where(self.key_column == id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create(self, obj: T) -> T:
        """Create a new record."""
        self.session.add(obj)
        await self.session.flush()
        return obj

from typing import TypeVar, Type, Optional, Generic
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from listing_payments.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)

class BaseRepository(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, db: AsyncSession, id) -> Optional[ModelType]:
        result = await db.execute(select(self.model).filter(self.model.id == id))
        return result.scalar_one_or_none()

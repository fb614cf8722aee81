from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update
from typing import Optional
from listing_payments.models.institution_model import Institution, InstitutionAdmin
from listing_payments.repository.base_repository import BaseRepository

class InstitutionRepository(BaseRepository[Institution]):
    def __init__(self):
        super().__init__(Institution)

    async def get_institution(self, db: AsyncSession, institution_id: int) -> Optional[Institution]:
        return await self.get(db, institution_id)

    async def get_admin(self, db: AsyncSession, admin_id: int) -> Optional[InstitutionAdmin]:
        result = await db.execute(select(InstitutionAdmin).filter(InstitutionAdmin.id == admin_id))
        return result.scalar_one_or_none()

    async def get_primary_admin(self, db: AsyncSession, institution_id: int) -> Optional[InstitutionAdmin]:
        result = await db.execute(
            select(InstitutionAdmin)
            .filter(InstitutionAdmin.institution_id == institution_id)
            .order_by(InstitutionAdmin.id.asc())
        )
        return result.scalars().first()

    async def get_category(self, db: AsyncSession, institution_id: int) -> Optional[str]:
        result = await db.execute(select(Institution.category).filter(Institution.id == institution_id))
        return result.scalar_one_or_none()

    async def mark_payment_done(self, db: AsyncSession, institution_id: int) -> None:
        await db.execute(
            update(Institution)
            .where(Institution.id == institution_id)
            .values(is_payment_done=True)
        )

institution_repository = InstitutionRepository()

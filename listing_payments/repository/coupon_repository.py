from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import or_, update
from typing import Optional
from listing_payments.models.coupon_model import Coupon
from listing_payments.repository.base_repository import BaseRepository

class CouponRepository(BaseRepository[Coupon]):
    def __init__(self):
        super().__init__(Coupon)

    async def get_by_code(self, db: AsyncSession, code: str) -> Optional[Coupon]:
        result = await db.execute(select(Coupon).filter(Coupon.code == code))
        return result.scalar_one_or_none()

    async def increment_use_count(self, db: AsyncSession, coupon_id: int) -> bool:
        """Atomically bumps use_count unless the coupon already hit max_uses."""
        result = await db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.max_uses.is_(None), Coupon.use_count < Coupon.max_uses),
            )
            .values(use_count=Coupon.use_count + 1)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

coupon_repository = CouponRepository()

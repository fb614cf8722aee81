# listing_payments/repository/subscription_repository.py
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from listing_payments.models.subscription_model import (
    Subscription,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_PENDING,
)
from listing_payments.repository.base_repository import BaseRepository


class SubscriptionRepository(BaseRepository[Subscription]):
    def __init__(self):
        super().__init__(Subscription)

    async def get_by_order_id(self, db: AsyncSession, order_id: str) -> Optional[Subscription]:
        result = await db.execute(select(Subscription).filter(Subscription.gateway_order_id == order_id))
        return result.scalar_one_or_none()

    async def get_latest_for_institution(
        self,
        db: AsyncSession,
        institution_id: int,
        order_id: Optional[str] = None,
    ) -> Optional[Subscription]:
        """Prefers the row for order_id when given, otherwise the most recent subscription."""
        if order_id:
            result = await db.execute(
                select(Subscription).filter(
                    Subscription.institution_id == institution_id,
                    Subscription.gateway_order_id == order_id,
                )
                .execution_options(populate_existing=True)
            )
            subscription = result.scalar_one_or_none()
            if subscription:
                return subscription

        result = await db.execute(
            select(Subscription)
            .filter(Subscription.institution_id == institution_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def mark_active_if_pending(
        self,
        db: AsyncSession,
        order_id: str,
        payment_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> bool:
        """
        Compare-and-set pending -> active. Returns False when another caller already
        won the transition, so the idempotency check and the write are one statement.
        """
        result = await db.execute(
            update(Subscription)
            .where(
                Subscription.gateway_order_id == order_id,
                Subscription.status == SUBSCRIPTION_PENDING,
            )
            .values(
                status=SUBSCRIPTION_ACTIVE,
                gateway_payment_id=payment_id,
                start_date=start_date,
                end_date=end_date,
            )
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

subscription_repository = SubscriptionRepository()

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from listing_payments.repository.institution_repository import institution_repository
from listing_payments.repository.subscription_repository import subscription_repository
from listing_payments.schemas.payment_schema import ActivationResult

logger = logging.getLogger(__name__)


def enqueue_payment_success_email(**email_data) -> None:
    from listing_payments.tasks.notification_tasks import send_payment_success_email

    send_payment_success_email.delay(**email_data)


class PaymentNotifier:
    """Queues the post-activation confirmation. Failures never reach the caller."""

    def __init__(self, enqueue: Callable[..., None] = enqueue_payment_success_email):
        self.enqueue = enqueue

    async def _recorded_amount(self, db: AsyncSession, order_id: str) -> Optional[float]:
        subscription = await subscription_repository.get_by_order_id(db, order_id)
        if subscription is None or subscription.amount is None:
            return None
        return float(subscription.amount)

    async def notify_activation(
        self,
        db: AsyncSession,
        order_id: str,
        result: ActivationResult,
        amount_paid: Optional[float] = None,
    ) -> None:
        try:
            admin = await institution_repository.get_primary_admin(db, result.institution_id)
            if not admin or not admin.email:
                logger.info(f"[Notify] No admin email for institution {result.institution_id}; skipping")
                return
            if amount_paid is None:
                # Context expired or payload had no amount: the order row has what was charged
                amount_paid = await self._recorded_amount(db, order_id)
            self.enqueue(
                email=admin.email,
                name=admin.name,
                plan_type=result.plan_type,
                amount=amount_paid,
                order_id=order_id,
                start_date=result.start_date.isoformat() if result.start_date else None,
                end_date=result.end_date.isoformat() if result.end_date else None,
            )
            logger.info(f"[Notify] Payment email queued for {admin.email}")
        except Exception as e:
            logger.warning(f"[Notify] Failed to queue payment email for order {order_id}: {e}")

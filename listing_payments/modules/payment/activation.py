import calendar
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from listing_payments.models.course_model import LISTING_TYPE_PAID
from listing_payments.models.subscription_model import SUBSCRIPTION_ACTIVE
from listing_payments.modules.payment.exceptions import PaymentContextMissing, SubscriptionNotFound
from listing_payments.repository.coupon_repository import coupon_repository
from listing_payments.repository.course_repository import course_repository, parse_course_ids
from listing_payments.repository.institution_repository import institution_repository
from listing_payments.repository.subscription_repository import subscription_repository
from listing_payments.schemas.payment_context_schema import PaymentContext
from listing_payments.schemas.payment_schema import ActivationResult

logger = logging.getLogger(__name__)


def add_months(start: datetime, months: int) -> datetime:
    """Adds calendar months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def compute_end_date(start: datetime, plan_type: str, duration_months: Optional[int] = None) -> datetime:
    if (plan_type or "").lower() == "yearly":
        return add_months(start, 12)
    return add_months(start, max(int(duration_months or 1), 1))


class ActivationEngine:
    """
    Moves a subscription from pending to active exactly once and activates the
    courses it paid for. The webhook and the poll/manual path both go through here.
    """

    async def activate(
        self,
        db: AsyncSession,
        order_id: str,
        payment_id: str,
        context: Optional[PaymentContext] = None,
    ) -> ActivationResult:
        try:
            result = await self._activate(db, order_id, payment_id, context)
        except Exception:
            await db.rollback()
            raise
        return result

    async def _activate(
        self,
        db: AsyncSession,
        order_id: str,
        payment_id: str,
        context: Optional[PaymentContext],
    ) -> ActivationResult:
        logger.info(f"[Activation] Fetching subscription for order: {order_id}")
        subscription = await subscription_repository.get_by_order_id(db, order_id)
        if not subscription:
            raise SubscriptionNotFound(f"Subscription not found for order {order_id}")

        institution_id = subscription.institution_id
        plan_type = subscription.plan_type

        if subscription.status == SUBSCRIPTION_ACTIVE:
            logger.info(f"[Activation] Subscription already active for order: {order_id}")
            return self._already_active(institution_id, plan_type)

        # Cached selection snapshot first, the durable row's own list otherwise
        if context and context.selected_course_ids:
            raw_course_ids = context.selected_course_ids
        else:
            raw_course_ids = subscription.course_ids or []
        course_ids = parse_course_ids(raw_course_ids)
        if not course_ids:
            raise PaymentContextMissing()

        duration = context.duration_multiplier if context else subscription.duration_months
        start_date = datetime.utcnow()
        end_date = compute_end_date(start_date, plan_type, duration)
        coupon_id = subscription.coupon_id

        claimed = await subscription_repository.mark_active_if_pending(
            db, order_id, payment_id, start_date, end_date
        )
        if not claimed:
            # Another caller committed the transition between our read and our write
            await db.rollback()
            logger.info(f"[Activation] Lost activation race for order: {order_id}")
            return self._already_active(institution_id, plan_type)

        if coupon_id:
            if await coupon_repository.increment_use_count(db, coupon_id):
                logger.info(f"[Activation] Coupon {coupon_id} use count incremented")
            else:
                logger.warning(
                    f"[Activation] Coupon {coupon_id} reached its use limit before order {order_id} was paid"
                )

        await institution_repository.mark_payment_done(db, institution_id)

        category = context.institution_category if context else None
        if not category:
            category = await institution_repository.get_category(db, institution_id)

        activated = await course_repository.activate_courses(
            db,
            institution_id=institution_id,
            course_ids=course_ids,
            listing_type=LISTING_TYPE_PAID,
            start_date=start_date,
            end_date=end_date,
            category=category,
        )

        await db.commit()
        logger.info(f"[Activation] Success for order {order_id}. Activated {activated} courses.")

        return ActivationResult(
            already_active=False,
            activated_course_count=activated,
            institution_id=institution_id,
            plan_type=plan_type,
            start_date=start_date,
            end_date=end_date,
        )

    def _already_active(self, institution_id: int, plan_type: str) -> ActivationResult:
        return ActivationResult(
            already_active=True,
            activated_course_count=0,
            institution_id=institution_id,
            plan_type=plan_type,
        )

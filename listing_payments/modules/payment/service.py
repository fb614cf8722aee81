import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from listing_payments.models.course_model import LISTING_TYPE_FREE
from listing_payments.models.institution_model import Institution
from listing_payments.models.subscription_model import (
    Subscription,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_PENDING,
)
from listing_payments.modules.payment.activation import ActivationEngine
from listing_payments.modules.payment.context_cache import PaymentContextCache
from listing_payments.modules.payment.exceptions import NoEligibleCourses
from listing_payments.modules.payment.gateway import RazorpayClient
from listing_payments.modules.payment.notifications import PaymentNotifier
from listing_payments.modules.payment.pricing import PricingEngine, PriceQuote, validate_coupon
from listing_payments.repository.coupon_repository import coupon_repository
from listing_payments.repository.course_repository import course_repository, parse_course_ids
from listing_payments.schemas.payment_context_schema import PaymentContext
from listing_payments.schemas.payment_schema import (
    CouponQuoteResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    FreeListingResponse,
    PayableAmountResponse,
)

logger = logging.getLogger(__name__)


class OrderService:
    """Prices a course selection, opens a gateway order and records it as a pending subscription."""

    def __init__(
        self,
        pricing: PricingEngine,
        gateway: RazorpayClient,
        context_cache: PaymentContextCache,
        activation_engine: ActivationEngine,
        notifier: Optional[PaymentNotifier] = None,
        currency: str = "INR",
        free_listing_days: int = 30,
    ):
        self.pricing = pricing
        self.gateway = gateway
        self.context_cache = context_cache
        self.activation_engine = activation_engine
        self.notifier = notifier
        self.currency = currency
        self.free_listing_days = free_listing_days

    async def resolve_eligible_course_ids(
        self,
        db: AsyncSession,
        institution: Institution,
        course_ids: List[str],
    ) -> List[uuid.UUID]:
        """Explicit selection only: valid ids, owned by the institution, currently Inactive."""
        parsed_ids = parse_course_ids(course_ids)
        eligible = await course_repository.find_eligible_ids(
            db, institution.id, parsed_ids, category=institution.category
        )
        if not eligible:
            logger.warning(f"[Payment] No eligible courses in selection for institution {institution.id}")
            raise NoEligibleCourses()
        return eligible

    async def create_order(
        self,
        db: AsyncSession,
        institution: Institution,
        order_request: CreateOrderRequest,
    ):
        logger.info(
            f"[Payment] Create order request: institution={institution.id} plan={order_request.plan_type} "
            f"coupon={order_request.coupon_code} free={order_request.is_free_listing}"
        )
        eligible_ids = await self.resolve_eligible_course_ids(db, institution, order_request.course_ids)

        if order_request.is_free_listing:
            return await self.create_free_listing(db, institution, eligible_ids)

        price_per_course = self.pricing.unit_price(order_request.plan_type)

        coupon = None
        if order_request.coupon_code:
            coupon = validate_coupon(await coupon_repository.get_by_code(db, order_request.coupon_code))

        quote = self.pricing.quote(
            order_request.plan_type,
            len(eligible_ids),
            duration_multiplier=order_request.duration_multiplier,
            coupon=coupon,
        )
        logger.info(
            f"[Payment] Priced order: base={quote.base_amount} discount={quote.discount} final={quote.final_amount}"
        )

        receipt = f"receipt_order_{uuid.uuid4().hex[:20]}"
        if quote.amount_minor_units > 0:
            order = await self.gateway.create_order(
                amount_minor=quote.amount_minor_units,
                currency=self.currency,
                receipt=receipt,
                notes={"institution_id": str(institution.id)},
            )
            order_id = order["id"]
        else:
            # Fully discounted: nothing to collect, so no gateway order is opened
            order_id = f"coupon_{uuid.uuid4().hex}"
        logger.info(f"[Payment] Gateway order created: {order_id}")

        course_id_strings = [str(course_id) for course_id in eligible_ids]
        context = PaymentContext(
            institution_id=institution.id,
            selected_course_ids=course_id_strings,
            total_amount=float(quote.final_amount),
            plan_type=quote.plan_type,
            price_per_course=float(price_per_course),
            duration_multiplier=quote.duration_multiplier,
            coupon_code=coupon.code if coupon else None,
            institution_category=institution.category,
        )
        fully_discounted = quote.amount_minor_units == 0
        if not fully_discounted:
            try:
                await self.context_cache.set(order_id, context)
            except (RedisError, OSError) as e:
                logger.warning(f"[Payment] Failed to cache payment context for {order_id}: {e}")

        subscription = Subscription(
            institution_id=institution.id,
            plan_type=quote.plan_type,
            duration_months=quote.duration_multiplier,
            status=SUBSCRIPTION_PENDING,
            gateway_order_id=order_id,
            gateway_payment_id=None,
            amount=quote.final_amount,
            course_ids=course_id_strings,
            coupon_id=coupon.id if coupon else None,
        )
        if fully_discounted:
            await self._record_and_activate(db, subscription, context)
        else:
            try:
                db.add(subscription)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.error(f"[Payment] Subscription record creation failed for order {order_id}")
                raise
            logger.info(f"[Payment] Pending subscription recorded for order {order_id}")

        return self._order_response(order_id, quote)

    async def _record_and_activate(
        self,
        db: AsyncSession,
        subscription: Subscription,
        context: PaymentContext,
    ) -> None:
        """The pending row and its activation commit in one transaction."""
        order_id = subscription.gateway_order_id
        try:
            db.add(subscription)
            await db.flush()
            result = await self.activation_engine.activate(db, order_id, payment_id=order_id, context=context)
        except Exception:
            await db.rollback()
            logger.error(f"[Payment] Fully discounted order {order_id} could not be activated")
            raise
        logger.info(f"[Payment] Fully discounted order {order_id} activated")
        if self.notifier is not None and not result.already_active:
            await self.notifier.notify_activation(db, order_id, result, amount_paid=0.0)

    def _order_response(self, order_id: str, quote: PriceQuote) -> CreateOrderResponse:
        return CreateOrderResponse(
            key=self.gateway.key_id,
            order_id=order_id,
            plan_type=quote.plan_type,
            total_eligible_courses=quote.course_count,
            price_per_course=float(quote.price_per_course),
            total_amount=float(quote.final_amount),
        )

    async def create_free_listing(
        self,
        db: AsyncSession,
        institution: Institution,
        eligible_ids: List[uuid.UUID],
    ) -> FreeListingResponse:
        """Zero-cost activation without a gateway order; subscription and courses change together."""
        logger.info(f"[Payment] Processing free listing for {len(eligible_ids)} courses")
        now = datetime.utcnow()
        end_date = now + timedelta(days=self.free_listing_days)
        order_id = f"free_{uuid.uuid4().hex}"

        try:
            db.add(
                Subscription(
                    institution_id=institution.id,
                    plan_type="free",
                    duration_months=0,
                    status=SUBSCRIPTION_ACTIVE,
                    gateway_order_id=order_id,
                    amount=0,
                    course_ids=[str(course_id) for course_id in eligible_ids],
                    start_date=now,
                    end_date=end_date,
                )
            )
            activated = await course_repository.activate_courses(
                db,
                institution_id=institution.id,
                course_ids=eligible_ids,
                listing_type=LISTING_TYPE_FREE,
                start_date=now,
                end_date=end_date,
                category=institution.category,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error(f"[Payment] Free listing activation failed for institution {institution.id}")
            raise

        logger.info(f"[Payment] Activated {activated} courses with free listing")
        return FreeListingResponse(
            order_id=order_id,
            total_activated_courses=activated,
            valid_until=end_date,
        )

    async def get_payable_amount(
        self,
        db: AsyncSession,
        institution: Institution,
        plan_type: Optional[str] = "yearly",
    ) -> PayableAmountResponse:
        price_per_course = self.pricing.unit_price(plan_type)
        total_inactive = await course_repository.count_inactive(db, institution.id, category=institution.category)
        return PayableAmountResponse(
            plan_type=plan_type.lower(),
            total_inactive_courses=total_inactive,
            price_per_course=float(price_per_course),
            total_amount=float(price_per_course * total_inactive),
        )

    async def apply_coupon(
        self,
        db: AsyncSession,
        institution: Institution,
        code: str,
        plan_type: Optional[str] = "yearly",
    ) -> CouponQuoteResponse:
        """Read-only coupon preview over every inactive course; nothing is reserved or counted."""
        coupon = validate_coupon(await coupon_repository.get_by_code(db, code))
        price_per_course = self.pricing.unit_price(plan_type)
        total_inactive = await course_repository.count_inactive(db, institution.id, category=institution.category)

        if total_inactive == 0:
            total_before = discount = total_after = 0.0
        else:
            quote = self.pricing.quote(plan_type, total_inactive, coupon=coupon)
            total_before = float(quote.base_amount)
            discount = float(quote.discount)
            total_after = float(quote.final_amount)
        logger.info(
            f"[Payment] Coupon {coupon.code} previewed for institution {institution.id}: "
            f"{total_before} - {discount} = {total_after}"
        )

        return CouponQuoteResponse(
            code=coupon.code,
            plan_type=plan_type.lower(),
            total_inactive_courses=total_inactive,
            price_per_course=float(price_per_course),
            total_before_discount=total_before,
            discount_amount=discount,
            total_after_discount=total_after,
        )

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from pydantic import BaseModel

from listing_payments.models.coupon_model import Coupon
from listing_payments.modules.payment.exceptions import (
    InvalidPlan,
    NoEligibleCourses,
    InvalidCoupon,
    CouponExpired,
    CouponInactive,
    CouponLimitExceeded,
)

CENT = Decimal("0.01")


class PriceQuote(BaseModel):
    plan_type: str
    course_count: int
    price_per_course: Decimal
    duration_multiplier: int
    base_amount: Decimal
    discount: Decimal
    final_amount: Decimal

    @property
    def amount_minor_units(self) -> int:
        return int((self.final_amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def validate_coupon(coupon: Optional[Coupon], now: Optional[datetime] = None) -> Coupon:
    """Raise the specific rejection for an unusable coupon, otherwise return it."""
    if coupon is None:
        raise InvalidCoupon()
    now = now or datetime.utcnow()
    if coupon.is_expired(now):
        raise CouponExpired()
    if not coupon.is_active:
        raise CouponInactive()
    if coupon.is_exhausted():
        raise CouponLimitExceeded()
    return coupon


class PricingEngine:
    """
    Prices an order: course count x plan unit price x duration, minus an optional
    percentage coupon, rounded to the currency's minor unit.
    """

    def __init__(self, plan_prices: Dict[str, float]):
        self.plan_prices = {k.lower(): Decimal(str(v)) for k, v in plan_prices.items()}

    def unit_price(self, plan_type: str) -> Decimal:
        price = self.plan_prices.get((plan_type or "").lower())
        if price is None or price <= 0:
            raise InvalidPlan()
        return price

    def quote(
        self,
        plan_type: str,
        course_count: int,
        duration_multiplier: int = 1,
        coupon: Optional[Coupon] = None,
    ) -> PriceQuote:
        price = self.unit_price(plan_type)
        if course_count <= 0:
            raise NoEligibleCourses()
        duration_multiplier = max(int(duration_multiplier or 1), 1)

        base_amount = (price * course_count * duration_multiplier).quantize(CENT, rounding=ROUND_HALF_UP)
        discount = Decimal("0.00")
        if coupon is not None:
            percentage = Decimal(str(coupon.discount_percentage))
            discount = (base_amount * percentage / 100).quantize(CENT, rounding=ROUND_HALF_UP)
        final_amount = max(base_amount - discount, Decimal("0.00"))

        return PriceQuote(
            plan_type=plan_type.lower(),
            course_count=course_count,
            price_per_course=price,
            duration_multiplier=duration_multiplier,
            base_amount=base_amount,
            discount=discount,
            final_amount=final_amount,
        )

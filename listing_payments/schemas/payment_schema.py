# listing_payments/schemas/payment_schema.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateOrderRequest(CamelModel):
    plan_type: Optional[str] = None
    course_ids: List[str] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    duration_multiplier: int = Field(default=1, ge=1)
    listing_type: Optional[Literal["free", "paid"]] = None
    amount: Optional[float] = None

    @property
    def is_free_listing(self) -> bool:
        return self.listing_type == "free" or self.amount == 0


class CreateOrderResponse(CamelModel):
    status: str = "success"
    key: Optional[str] = None
    order_id: str
    plan_type: str
    total_eligible_courses: int
    price_per_course: float
    total_amount: float


class FreeListingResponse(CamelModel):
    status: str = "success"
    message: str = "Free listing activated successfully"
    listing_type: str = "free"
    plan_type: str = "free"
    order_id: str
    total_activated_courses: int
    valid_until: datetime
    amount: float = 0


class PayableAmountResponse(CamelModel):
    status: str = "success"
    plan_type: str
    total_inactive_courses: int
    price_per_course: float
    total_amount: float


class WebhookResponse(BaseModel):
    status: str


class PollStatusResponse(BaseModel):
    success: bool
    status: Literal["pending", "active"]


class ActivationResult(CamelModel):
    already_active: bool
    activated_course_count: int = 0
    institution_id: Optional[int] = None
    plan_type: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ApplyCouponRequest(CamelModel):
    code: str = Field(min_length=1)
    plan_type: str = "yearly"


class CouponQuoteResponse(CamelModel):
    status: str = "success"
    message: str = "Coupon applied successfully"
    code: str
    plan_type: str
    total_inactive_courses: int
    price_per_course: float
    total_before_discount: float
    discount_amount: float
    total_after_discount: float

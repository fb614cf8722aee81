# listing_payments/schemas/payment_context_schema.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PaymentContext(BaseModel):
    """Snapshot of what a gateway order was created for. Never re-derived after creation."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    institution_id: int
    selected_course_ids: List[str] = Field(default_factory=list)
    total_amount: float
    plan_type: str
    price_per_course: float
    duration_multiplier: int = 1
    coupon_code: Optional[str] = None
    institution_category: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

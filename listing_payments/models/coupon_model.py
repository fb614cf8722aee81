# listing_payments/models/coupon_model.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, func

from .base import Base


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    discount_percentage = Column(Float, nullable=False)  # 0-100
    valid_till = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    max_uses = Column(Integer, nullable=True)  # None means unlimited
    use_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    def is_expired(self, now) -> bool:
        return self.valid_till is not None and self.valid_till < now

    def is_exhausted(self) -> bool:
        return self.max_uses is not None and (self.use_count or 0) >= self.max_uses

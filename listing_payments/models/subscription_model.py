# listing_payments/models/subscription_model.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, JSON, func
from sqlalchemy.orm import relationship

from .base import Base

SUBSCRIPTION_PENDING = "pending"
SUBSCRIPTION_ACTIVE = "active"

class Subscription(Base):
    __tablename__ = 'subscriptions'
    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey('institutions.id'), nullable=False, index=True)

    plan_type = Column(String(20), nullable=False)  # monthly | yearly | free
    duration_months = Column(Integer, nullable=False, default=1)

    # Status only moves forward: pending -> active
    status = Column(String(20), default=SUBSCRIPTION_PENDING, nullable=False, index=True)

    gateway_order_id = Column(String(100), unique=True, nullable=False, index=True)
    gateway_payment_id = Column(String(100), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)

    # Snapshot of the selected course ids (as strings), used when the cached context is gone
    course_ids = Column(JSON, nullable=False, default=list)
    coupon_id = Column(Integer, ForeignKey('coupons.id'), nullable=True)

    start_date = Column(DateTime)
    end_date = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    institution = relationship("Institution", back_populates="subscriptions")
    coupon = relationship("Coupon")

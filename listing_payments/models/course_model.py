# listing_payments/models/course_model.py
import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Uuid, Index, func
from sqlalchemy.orm import relationship

from .base import Base

COURSE_STATUS_ACTIVE = "Active"
COURSE_STATUS_INACTIVE = "Inactive"

LISTING_TYPE_PAID = "paid"
LISTING_TYPE_FREE = "free"


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (
        Index("ix_courses_institution_status", "institution_id", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    category = Column(String(50), nullable=True)
    name = Column(String(255), nullable=True)

    # Only Inactive courses can be activated by a subscription
    status = Column(String(20), nullable=False, default=COURSE_STATUS_INACTIVE)
    listing_type = Column(String(20), nullable=True)
    subscription_start_date = Column(DateTime, nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    institution = relationship("Institution", back_populates="courses")

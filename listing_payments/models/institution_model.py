from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    func,
)
from sqlalchemy.orm import relationship
from listing_payments.models.base import Base


class Institution(Base):
    __tablename__ = "institutions"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    # Courses are partitioned by category (SCHOOL, UPSKILLING, EXAM_PREP, ...)
    category = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_payment_done = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    admins = relationship("InstitutionAdmin", back_populates="institution")
    courses = relationship("Course", back_populates="institution")
    subscriptions = relationship("Subscription", back_populates="institution")


class InstitutionAdmin(Base):
    __tablename__ = "institution_admins"
    id = Column(Integer, primary_key=True)
    name = Column(String(255))
    email = Column(String(255), unique=True, index=True, nullable=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=True, index=True)

    institution = relationship("Institution", back_populates="admins")

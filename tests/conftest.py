import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from listing_payments.main import app
from listing_payments.core.dependencies import get_current_institution, get_db
from listing_payments.models import Coupon, Course, Institution, InstitutionAdmin, Subscription
from listing_payments.models.base import Base
from listing_payments.models.course_model import COURSE_STATUS_INACTIVE
from listing_payments.modules.payment.activation import ActivationEngine
from listing_payments.modules.payment.context_cache import PaymentContextCache
from listing_payments.modules.payment.notifications import PaymentNotifier
from listing_payments.modules.payment.pricing import PricingEngine

WEBHOOK_SECRET = "test_webhook_secret"
KEY_SECRET = "test_key_secret"
PLAN_PRICES = {"monthly": 99, "yearly": 999}


class InMemoryRedis:
    """Async stand-in for the handful of Redis commands the context cache uses."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def context_cache(fake_redis):
    return PaymentContextCache(fake_redis, ttl_seconds=3600)


@pytest.fixture
def activation_engine():
    return ActivationEngine()


@pytest.fixture
def pricing():
    return PricingEngine(PLAN_PRICES)


@pytest.fixture
def enqueued_emails():
    return []


@pytest.fixture
def notifier(enqueued_emails):
    return PaymentNotifier(enqueue=lambda **data: enqueued_emails.append(data))


async def seed_institution(session_factory, course_count: int = 5, category: str = "SCHOOL"):
    """Creates an institution with an admin and `course_count` inactive courses."""
    async with session_factory() as session:
        institution = Institution(name="Sunrise Academy", category=category, email="office@sunrise.test")
        session.add(institution)
        await session.flush()
        admin = InstitutionAdmin(name="Asha Rao", email=f"admin{institution.id}@sunrise.test", institution_id=institution.id)
        courses = [
            Course(
                id=uuid.uuid4(),
                institution_id=institution.id,
                category=category,
                name=f"Course {i}",
                status=COURSE_STATUS_INACTIVE,
            )
            for i in range(course_count)
        ]
        session.add(admin)
        session.add_all(courses)
        await session.commit()
        return institution, admin, courses


async def seed_coupon(session_factory, code="SAVE10", discount_percentage=10, **kwargs):
    async with session_factory() as session:
        coupon = Coupon(
            code=code,
            discount_percentage=discount_percentage,
            valid_till=kwargs.pop("valid_till", datetime.utcnow() + timedelta(days=30)),
            is_active=kwargs.pop("is_active", True),
            max_uses=kwargs.pop("max_uses", None),
            use_count=kwargs.pop("use_count", 0),
        )
        session.add(coupon)
        await session.commit()
        return coupon


async def seed_pending_subscription(
    session_factory,
    institution,
    courses,
    order_id="order_test_1",
    plan_type="yearly",
    coupon=None,
    duration_months=1,
):
    async with session_factory() as session:
        subscription = Subscription(
            institution_id=institution.id,
            plan_type=plan_type,
            duration_months=duration_months,
            status="pending",
            gateway_order_id=order_id,
            amount=999 * len(courses),
            course_ids=[str(course.id) for course in courses],
            coupon_id=coupon.id if coupon else None,
        )
        session.add(subscription)
        await session.commit()
        return subscription


async def fetch_courses(session_factory, institution_id):
    async with session_factory() as session:
        result = await session.execute(select(Course).filter(Course.institution_id == institution_id))
        return {course.id: course for course in result.scalars().all()}


async def fetch_subscription(session_factory, order_id):
    async with session_factory() as session:
        result = await session.execute(select(Subscription).filter(Subscription.gateway_order_id == order_id))
        return result.scalar_one_or_none()


async def fetch_coupon(session_factory, coupon_id):
    async with session_factory() as session:
        return await session.get(Coupon, coupon_id)


async def fetch_institution(session_factory, institution_id):
    async with session_factory() as session:
        return await session.get(Institution, institution_id)


@pytest.fixture
def mock_institution():
    return Institution(id=1, name="Sunrise Academy", category="SCHOOL", is_payment_done=False)


@pytest.fixture
def client(mock_institution):
    """Client authenticated as an institution admin; DB and services are overridden per test."""
    async def _override_db():
        yield None

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_current_institution] = lambda: mock_institution
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

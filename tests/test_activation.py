import asyncio
from datetime import datetime

import pytest

from conftest import (
    fetch_coupon,
    fetch_courses,
    fetch_institution,
    fetch_subscription,
    seed_coupon,
    seed_institution,
    seed_pending_subscription,
)
from listing_payments.models.course_model import COURSE_STATUS_ACTIVE, COURSE_STATUS_INACTIVE, LISTING_TYPE_PAID
from listing_payments.modules.payment.activation import ActivationEngine, add_months, compute_end_date
from listing_payments.modules.payment.exceptions import PaymentContextMissing, SubscriptionNotFound
from listing_payments.repository.subscription_repository import subscription_repository
from listing_payments.schemas.payment_context_schema import PaymentContext


def make_context(institution, course_ids, plan_type="yearly", duration=1):
    return PaymentContext(
        institution_id=institution.id,
        selected_course_ids=[str(course_id) for course_id in course_ids],
        total_amount=999.0 * len(course_ids),
        plan_type=plan_type,
        price_per_course=999.0,
        duration_multiplier=duration,
        institution_category=institution.category,
    )


def test_add_months_clamps_day_to_month_end():
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2023, 11, 15), 3) == datetime(2024, 2, 15)


def test_compute_end_date_yearly_ignores_duration():
    start = datetime(2024, 3, 10, 12, 0)
    assert compute_end_date(start, "yearly", 5) == datetime(2025, 3, 10, 12, 0)
    assert compute_end_date(start, "monthly", 3) == datetime(2024, 6, 10, 12, 0)
    assert compute_end_date(start, "monthly", None) == datetime(2024, 4, 10, 12, 0)


@pytest.mark.asyncio
async def test_activation_activates_selected_courses(session_factory, db, activation_engine):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)
    context = make_context(institution, [c.id for c in courses])

    result = await activation_engine.activate(db, "order_test_1", "pay_1", context)

    assert result.already_active is False
    assert result.activated_course_count == 5
    assert result.institution_id == institution.id

    subscription = await fetch_subscription(session_factory, "order_test_1")
    assert subscription.status == "active"
    assert subscription.gateway_payment_id == "pay_1"
    assert add_months(subscription.start_date, 12) == subscription.end_date

    stored = await fetch_courses(session_factory, institution.id)
    for course in stored.values():
        assert course.status == COURSE_STATUS_ACTIVE
        assert course.listing_type == LISTING_TYPE_PAID
        assert course.subscription_end_date == subscription.end_date

    refreshed = await fetch_institution(session_factory, institution.id)
    assert refreshed.is_payment_done is True


@pytest.mark.asyncio
async def test_second_activation_is_a_no_op(session_factory, db, activation_engine):
    institution, _, courses = await seed_institution(session_factory)
    coupon = await seed_coupon(session_factory, max_uses=10)
    await seed_pending_subscription(session_factory, institution, courses, coupon=coupon)

    first = await activation_engine.activate(db, "order_test_1", "pay_1")
    before = await fetch_subscription(session_factory, "order_test_1")
    second = await activation_engine.activate(db, "order_test_1", "pay_2")
    after = await fetch_subscription(session_factory, "order_test_1")

    assert first.already_active is False
    assert second.already_active is True
    assert second.activated_course_count == 0
    assert after.gateway_payment_id == "pay_1"
    assert after.end_date == before.end_date
    assert (await fetch_coupon(session_factory, coupon.id)).use_count == 1


@pytest.mark.asyncio
async def test_context_selection_wins_over_recorded_ids(session_factory, db, activation_engine):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)
    selected = [courses[0].id, courses[3].id]

    result = await activation_engine.activate(db, "order_test_1", "pay_1", make_context(institution, selected))

    assert result.activated_course_count == 2
    stored = await fetch_courses(session_factory, institution.id)
    for course_id, course in stored.items():
        expected = COURSE_STATUS_ACTIVE if course_id in selected else COURSE_STATUS_INACTIVE
        assert course.status == expected


@pytest.mark.asyncio
async def test_expired_context_falls_back_to_subscription_record(session_factory, db, activation_engine):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses[:2], plan_type="monthly", duration_months=3)

    result = await activation_engine.activate(db, "order_test_1", "pay_1", context=None)

    assert result.activated_course_count == 2
    assert result.end_date == add_months(result.start_date, 3)
    stored = await fetch_courses(session_factory, institution.id)
    assert sum(1 for c in stored.values() if c.status == COURSE_STATUS_ACTIVE) == 2


@pytest.mark.asyncio
async def test_missing_selection_leaves_state_untouched(session_factory, db, activation_engine):
    institution, _, _ = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, [])

    with pytest.raises(PaymentContextMissing):
        await activation_engine.activate(db, "order_test_1", "pay_1", context=None)

    subscription = await fetch_subscription(session_factory, "order_test_1")
    assert subscription.status == "pending"
    assert subscription.gateway_payment_id is None
    stored = await fetch_courses(session_factory, institution.id)
    assert all(c.status == COURSE_STATUS_INACTIVE for c in stored.values())
    assert (await fetch_institution(session_factory, institution.id)).is_payment_done is False


@pytest.mark.asyncio
async def test_unknown_order_raises_not_found(db, activation_engine):
    with pytest.raises(SubscriptionNotFound):
        await activation_engine.activate(db, "order_missing", "pay_1")


@pytest.mark.asyncio
async def test_already_active_courses_are_not_reactivated(session_factory, db, activation_engine):
    institution, _, courses = await seed_institution(session_factory, course_count=3)
    await seed_pending_subscription(session_factory, institution, courses, order_id="order_a")
    await seed_pending_subscription(session_factory, institution, courses[:1], order_id="order_b")

    await activation_engine.activate(db, "order_a", "pay_a")
    original_end = (await fetch_courses(session_factory, institution.id))[courses[0].id].subscription_end_date
    result = await activation_engine.activate(db, "order_b", "pay_b")

    assert result.already_active is False
    assert result.activated_course_count == 0
    stored = await fetch_courses(session_factory, institution.id)
    assert stored[courses[0].id].subscription_end_date == original_end


@pytest.mark.asyncio
async def test_stale_pending_read_loses_to_committed_activation(session_factory, activation_engine):
    institution, _, courses = await seed_institution(session_factory)
    coupon = await seed_coupon(session_factory)
    await seed_pending_subscription(session_factory, institution, courses, coupon=coupon)

    async with session_factory() as slow_session, session_factory() as fast_session:
        # The slow caller observes "pending" before the fast caller commits
        stale = await subscription_repository.get_by_order_id(slow_session, "order_test_1")
        assert stale.status == "pending"

        fast = await activation_engine.activate(fast_session, "order_test_1", "pay_fast")
        slow = await ActivationEngine().activate(slow_session, "order_test_1", "pay_slow")

    assert fast.already_active is False
    assert slow.already_active is True
    subscription = await fetch_subscription(session_factory, "order_test_1")
    assert subscription.gateway_payment_id == "pay_fast"
    assert (await fetch_coupon(session_factory, coupon.id)).use_count == 1


@pytest.mark.asyncio
async def test_concurrent_activations_apply_once(session_factory, activation_engine):
    institution, _, courses = await seed_institution(session_factory)
    coupon = await seed_coupon(session_factory)
    await seed_pending_subscription(session_factory, institution, courses, coupon=coupon)

    async def run(payment_id):
        async with session_factory() as session:
            return await activation_engine.activate(session, "order_test_1", payment_id)

    results = await asyncio.gather(run("pay_a"), run("pay_b"))

    assert sorted(r.already_active for r in results) == [False, True]
    assert sum(r.activated_course_count for r in results) == 5
    assert (await fetch_coupon(session_factory, coupon.id)).use_count == 1


@pytest.mark.asyncio
async def test_exhausted_coupon_is_not_incremented_past_limit(session_factory, db, activation_engine):
    institution, _, courses = await seed_institution(session_factory)
    coupon = await seed_coupon(session_factory, max_uses=1, use_count=1)
    await seed_pending_subscription(session_factory, institution, courses, coupon=coupon)

    result = await activation_engine.activate(db, "order_test_1", "pay_1")

    assert result.already_active is False
    assert (await fetch_coupon(session_factory, coupon.id)).use_count == 1

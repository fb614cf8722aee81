import json

import pytest

from conftest import (
    WEBHOOK_SECRET,
    fetch_courses,
    fetch_subscription,
    seed_institution,
    seed_pending_subscription,
)
from listing_payments.models.course_model import COURSE_STATUS_ACTIVE, COURSE_STATUS_INACTIVE
from listing_payments.modules.payment.exceptions import PaymentError, SignatureInvalid, SubscriptionNotFound
from listing_payments.modules.payment.gateway import compute_webhook_signature
from listing_payments.modules.payment.webhook import WebhookHandler
from listing_payments.schemas.payment_context_schema import PaymentContext


def captured_event(order_id="order_test_1", payment_id="pay_1", amount=499500, event="payment.captured"):
    return json.dumps(
        {
            "event": event,
            "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id, "amount": amount}}},
        }
    ).encode()


def sign(body: bytes) -> str:
    return compute_webhook_signature(body, WEBHOOK_SECRET)


@pytest.fixture
def webhook_handler(activation_engine, context_cache, notifier):
    return WebhookHandler(
        webhook_secret=WEBHOOK_SECRET,
        activation_engine=activation_engine,
        context_cache=context_cache,
        notifier=notifier,
    )


@pytest.mark.asyncio
async def test_captured_payment_activates_and_notifies(
    session_factory, db, webhook_handler, context_cache, fake_redis, enqueued_emails
):
    institution, admin, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)
    await context_cache.set(
        "order_test_1",
        PaymentContext(
            institution_id=institution.id,
            selected_course_ids=[str(c.id) for c in courses[:3]],
            total_amount=2997.0,
            plan_type="yearly",
            price_per_course=999.0,
            institution_category=institution.category,
        ),
    )
    body = captured_event(amount=299700)

    response = await webhook_handler.handle(db, body, sign(body))

    assert response.status == "success"
    subscription = await fetch_subscription(session_factory, "order_test_1")
    assert subscription.status == "active"
    assert subscription.gateway_payment_id == "pay_1"
    stored = await fetch_courses(session_factory, institution.id)
    assert sum(1 for c in stored.values() if c.status == COURSE_STATUS_ACTIVE) == 3
    assert fake_redis.store == {}

    assert len(enqueued_emails) == 1
    email = enqueued_emails[0]
    assert email["email"] == admin.email
    assert email["amount"] == 2997.0
    assert email["order_id"] == "order_test_1"
    assert email["end_date"] == subscription.end_date.isoformat()


@pytest.mark.asyncio
async def test_redelivered_event_is_already_active(session_factory, db, webhook_handler, enqueued_emails):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)
    body = captured_event()

    first = await webhook_handler.handle(db, body, sign(body))
    second = await webhook_handler.handle(db, body, sign(body))

    assert first.status == "success"
    assert second.status == "already_active"
    assert len(enqueued_emails) == 1


@pytest.mark.asyncio
async def test_tampered_body_is_rejected_without_state_change(session_factory, db, webhook_handler):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)
    signature = sign(captured_event())
    tampered = captured_event(amount=100)

    with pytest.raises(SignatureInvalid) as exc_info:
        await webhook_handler.handle(db, tampered, signature)

    assert exc_info.value.status_code == 400
    assert (await fetch_subscription(session_factory, "order_test_1")).status == "pending"
    stored = await fetch_courses(session_factory, institution.id)
    assert all(c.status == COURSE_STATUS_INACTIVE for c in stored.values())


@pytest.mark.asyncio
async def test_non_ascii_signature_is_rejected_without_state_change(session_factory, db, webhook_handler):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)

    with pytest.raises(SignatureInvalid):
        await webhook_handler.handle(db, captured_event(), "éabc")

    assert (await fetch_subscription(session_factory, "order_test_1")).status == "pending"


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(db, webhook_handler):
    with pytest.raises(SignatureInvalid):
        await webhook_handler.handle(db, captured_event(), None)


@pytest.mark.asyncio
async def test_signature_comparison_ignores_hex_case(session_factory, db, webhook_handler):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)
    body = captured_event()

    response = await webhook_handler.handle(db, body, sign(body).upper())

    assert response.status == "success"


@pytest.mark.asyncio
@pytest.mark.parametrize("event", ["payment.failed", "refund.processed", "order.paid"])
async def test_other_events_are_ignored(session_factory, db, webhook_handler, event):
    institution, _, courses = await seed_institution(session_factory)
    await seed_pending_subscription(session_factory, institution, courses)
    body = captured_event(event=event)

    response = await webhook_handler.handle(db, body, sign(body))

    assert response.status == "ignored"
    assert (await fetch_subscription(session_factory, "order_test_1")).status == "pending"


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(db, webhook_handler):
    body = captured_event(order_id="order_unknown")

    with pytest.raises(SubscriptionNotFound):
        await webhook_handler.handle(db, body, sign(body))


@pytest.mark.asyncio
async def test_invalid_json_is_rejected(db, webhook_handler):
    body = b"not json"

    with pytest.raises(PaymentError, match="Invalid JSON payload"):
        await webhook_handler.handle(db, body, sign(body))


@pytest.mark.asyncio
async def test_payload_without_order_id_is_rejected(db, webhook_handler):
    body = json.dumps({"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_1"}}}}).encode()

    with pytest.raises(PaymentError):
        await webhook_handler.handle(db, body, sign(body))

import json
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from listing_payments.modules.payment.activation import ActivationEngine
from listing_payments.modules.payment.context_cache import PaymentContextCache
from listing_payments.modules.payment.exceptions import PaymentError, SignatureInvalid
from listing_payments.modules.payment.gateway import compute_webhook_signature, signatures_match
from listing_payments.modules.payment.notifications import PaymentNotifier
from listing_payments.schemas.payment_schema import WebhookResponse

logger = logging.getLogger(__name__)

PAYMENT_CAPTURED = "payment.captured"


class WebhookHandler:
    def __init__(
        self,
        webhook_secret: str,
        activation_engine: ActivationEngine,
        context_cache: PaymentContextCache,
        notifier: PaymentNotifier,
    ):
        self.webhook_secret = webhook_secret
        self.activation_engine = activation_engine
        self.context_cache = context_cache
        self.notifier = notifier

    def verify(self, body: bytes, signature: Optional[str]) -> None:
        expected = compute_webhook_signature(body, self.webhook_secret)
        if not signatures_match(expected, signature):
            logger.warning("[Webhook] Invalid signature received.")
            raise SignatureInvalid()

    async def handle(self, db: AsyncSession, body: bytes, signature: Optional[str]) -> WebhookResponse:
        """
        Authenticates a gateway notification and activates the order it reports.

        Only payment.captured is acted upon; failed and refunded payments are
        acknowledged as ignored and leave the subscription pending.
        """
        self.verify(body, signature)

        try:
            event = json.loads(body)
        except ValueError:
            raise PaymentError("Invalid JSON payload")

        event_type = event.get("event")
        if event_type != PAYMENT_CAPTURED:
            logger.info(f"[Webhook] Ignored non-capture event: {event_type}")
            return WebhookResponse(status="ignored")

        entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
        order_id = entity.get("order_id")
        payment_id = entity.get("id")
        amount_minor = entity.get("amount")
        if not order_id or not payment_id:
            raise PaymentError("Missing order_id or payment id in payload")

        context = await self.context_cache.get(order_id)
        if not context:
            logger.warning(f"[Webhook] Payment context missing for order: {order_id}; using subscription record")

        result = await self.activation_engine.activate(db, order_id, payment_id, context)
        if result.already_active:
            logger.info(f"[Webhook] Payment already processed for {order_id}")
            return WebhookResponse(status="already_active")

        logger.info(f"[Webhook] Activation complete for {order_id}")
        await self.context_cache.delete(order_id)
        amount_paid = amount_minor / 100 if isinstance(amount_minor, (int, float)) else None
        await self.notifier.notify_activation(db, order_id, result, amount_paid=amount_paid)
        return WebhookResponse(status="success")

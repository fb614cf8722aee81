import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from listing_payments.modules.payment.activation import ActivationEngine
from listing_payments.modules.payment.context_cache import PaymentContextCache
from listing_payments.modules.payment.gateway import compute_checkout_signature, signatures_match
from listing_payments.modules.payment.notifications import PaymentNotifier
from listing_payments.repository.subscription_repository import subscription_repository
from listing_payments.schemas.payment_schema import PollStatusResponse

logger = logging.getLogger(__name__)


class PollVerificationHandler:
    """
    Client-side fallback for a slow webhook: a checkout signature over
    'order_id|payment_id' lets the client trigger the same activation.
    Safe to call repeatedly.
    """

    def __init__(
        self,
        key_secret: str,
        activation_engine: ActivationEngine,
        context_cache: PaymentContextCache,
        notifier: PaymentNotifier,
    ):
        self.key_secret = key_secret
        self.activation_engine = activation_engine
        self.context_cache = context_cache
        self.notifier = notifier

    async def poll(
        self,
        db: AsyncSession,
        institution_id: int,
        order_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PollStatusResponse:
        if order_id and payment_id and signature:
            expected = compute_checkout_signature(order_id, payment_id, self.key_secret)
            if signatures_match(expected, signature):
                logger.info(f"[Poll] Signature verified for order {order_id}")
                await self._try_activate(db, order_id, payment_id)
            else:
                logger.warning(f"[Poll] Invalid signature for order {order_id}")

        subscription = await subscription_repository.get_latest_for_institution(db, institution_id, order_id)
        if not subscription:
            return PollStatusResponse(success=False, status="pending")
        return PollStatusResponse(success=True, status=subscription.status)

    async def _try_activate(self, db: AsyncSession, order_id: str, payment_id: str) -> None:
        context = await self.context_cache.get(order_id)
        try:
            result = await self.activation_engine.activate(db, order_id, payment_id, context)
        except Exception as e:
            # Activation errors must not fail the status read
            logger.error(f"[Poll] Manual activation failed for order {order_id}: {e}")
            return

        if result.already_active:
            return
        logger.info(f"[Poll] Manual activation successful for {order_id}")
        await self.context_cache.delete(order_id)
        amount_paid = context.total_amount if context else None
        await self.notifier.notify_activation(db, order_id, result, amount_paid=amount_paid)

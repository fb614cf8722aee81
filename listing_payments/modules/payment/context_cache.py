import logging
from typing import Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from listing_payments.schemas.payment_context_schema import PaymentContext

logger = logging.getLogger(__name__)


class PaymentContextCache:
    """
    Transient snapshot store keyed by gateway order id.

    Entries are advisory: the Subscription row is the durable source of truth, so
    every read failure degrades to a cache miss.
    """

    KEY_PREFIX = "payment_context"

    def __init__(self, redis: Redis, ttl_seconds: int = 3600):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    def _make_key(self, order_id: str) -> str:
        return f"{self.KEY_PREFIX}:{order_id}"

    async def set(self, order_id: str, context: PaymentContext) -> None:
        await self.redis.setex(
            self._make_key(order_id),
            self.ttl_seconds,
            context.model_dump_json(by_alias=True),
        )

    async def get(self, order_id: str) -> Optional[PaymentContext]:
        try:
            raw = await self.redis.get(self._make_key(order_id))
        except RedisError as e:
            logger.warning(f"[PaymentContext] Redis GET failed for order {order_id}: {e}")
            return None
        if raw is None:
            return None
        try:
            return PaymentContext.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[PaymentContext] Discarding malformed context for order {order_id}: {e}")
            return None

    async def delete(self, order_id: str) -> None:
        try:
            await self.redis.delete(self._make_key(order_id))
        except RedisError as e:
            logger.warning(f"[PaymentContext] Failed to delete context for order {order_id}: {e}")

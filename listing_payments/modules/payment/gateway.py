import hashlib
import hmac
import logging
from typing import Optional

import httpx

from listing_payments.modules.payment.exceptions import GatewayError

logger = logging.getLogger(__name__)


def compute_webhook_signature(body: bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest over the exact webhook body bytes."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def compute_checkout_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Signature the checkout widget hands back to the client: HMAC over 'order_id|payment_id'."""
    message = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    # Bytes comparison: header values may carry any latin-1 character
    candidate = received.strip().lower().encode("utf-8", "surrogateescape")
    return hmac.compare_digest(expected.lower().encode(), candidate)


class RazorpayClient:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        api_base: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _url(self, path: str) -> str:
        return f"{self.api_base}/{path.lstrip('/')}"

    async def create_order(self, amount_minor: int, currency: str, receipt: str, notes: dict = None) -> dict:
        """Creates a gateway order. amount_minor is in the currency's minor unit (paise)."""
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
        }
        if notes:
            payload["notes"] = notes

        try:
            async with httpx.AsyncClient(
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(self._url("/orders"), json=payload)
                response.raise_for_status()
                order = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"[Gateway] Order creation rejected: {e.response.status_code} {e.response.text}")
            raise GatewayError()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Gateway] Order creation failed: {e}")
            raise GatewayError()

        if not isinstance(order, dict) or not order.get("id"):
            logger.error(f"[Gateway] Unexpected order response: {order}")
            raise GatewayError()
        return order

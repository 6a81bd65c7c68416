"""
Razorpay gateway client.

The SDK is synchronous, so calls run in a worker thread behind the payment
circuit breaker.
"""

import asyncio
import hashlib
import hmac
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import razorpay
from razorpay.errors import BadRequestError

from ..config import get_settings
from ..utils.circuit_breaker import get_payment_circuit_breaker
from ..utils.exceptions import ExternalServiceError, PaymentServiceError

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Thin async wrapper over the Razorpay orders API."""

    def __init__(self, key_id: Optional[str], key_secret: Optional[str]):
        self.key_id = key_id
        self._key_secret = key_secret
        self._client: Optional[razorpay.Client] = None

    @property
    def client(self) -> razorpay.Client:
        if not self.key_id or not self._key_secret:
            raise PaymentServiceError("Razorpay credentials are not configured")
        if self._client is None:
            self._client = razorpay.Client(auth=(self.key_id, self._key_secret))
        return self._client

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Dict[str, str]
    ) -> Dict[str, Any]:
        """
        Create a gateway order.

        Args:
            amount: Amount in the currency's minor unit (paise for INR)
            currency: ISO currency code
            receipt: Merchant receipt reference, at most 40 characters
            notes: Free-form key/value pairs stored on the order

        Returns:
            The gateway's order object (``id``, ``amount``, ``currency``, ...)

        Raises:
            PaymentServiceError: If the gateway rejects the order or is unreachable
        """
        client = self.client
        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }

        async def _create():
            return await asyncio.to_thread(client.order.create, data=payload)

        try:
            if get_settings().enable_circuit_breakers:
                order = await get_payment_circuit_breaker().call(_create)
            else:
                order = await _create()
        except ExternalServiceError as e:
            logger.error(f"Gateway order creation failed for receipt {receipt}: {e.message}")
            raise PaymentServiceError("Failed to create payment order", details=e.details) from e
        except BadRequestError as e:
            logger.error(f"Gateway rejected order for receipt {receipt}: {e}")
            raise PaymentServiceError("Failed to create payment order", details={"gateway_error": str(e)}) from e

        logger.info(f"Gateway order {order.get('id')} created for receipt {receipt}")
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """
        Check a checkout signature.

        The gateway signs ``"<order_id>|<payment_id>"`` with HMAC-SHA256 keyed
        by the account secret and sends the hex digest.
        """
        if not self._key_secret:
            raise PaymentServiceError("Razorpay credentials are not configured")

        expected = hmac.new(
            self._key_secret.encode("utf-8"),
            f"{order_id}|{payment_id}".encode("utf-8"),
            hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected, signature or "")


@lru_cache()
def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the process-wide gateway client."""
    settings = get_settings()
    return PaymentGateway(settings.razorpay_key_id, settings.razorpay_key_secret)

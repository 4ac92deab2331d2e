"""
Razorpay payment gateway adapter.

WHAT: Creates gateway orders, verifies checkout and webhook signatures,
and issues refunds.

WHY: Payment is a two-phase exchange with the gateway:
1. create-order stores a pending local record with the gateway order id
2. The client pays out of band in the gateway's checkout
3. The verify callback must carry a valid HMAC-SHA256 signature before
   the local record may become completed

HOW: REST calls over httpx with basic auth (key id / key secret).
Signatures are compared in constant time. Timeouts and connection
failures surface as NetworkError so callers can offer a retry.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from client_portal.core.config import settings
from client_portal.core.exceptions import NetworkError, PaymentGatewayError

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    """An order created at the gateway."""

    id: str
    """Gateway order id (order_xxx)."""

    amount: int
    """Amount in minor units."""

    currency: str
    """ISO currency code."""

    receipt: Optional[str] = None
    """Merchant receipt reference."""


def compute_signature(message: str, secret: str) -> str:
    """Hex HMAC-SHA256 of a message."""
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


class RazorpayGateway:
    """
    Razorpay REST client.

    Attributes:
        key_id: Public key id, also handed to the checkout widget
        key_secret: Secret used for API auth and checkout signatures
        webhook_secret: Secret used for webhook signatures
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        )
        self.api_base = api_base or settings.RAZORPAY_API_BASE
        self.timeout = timeout or settings.EXTERNAL_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def _request(self, method: str, path: str, json: Dict[str, Any]) -> Dict[str, Any]:
        """
        Call the gateway API.

        Raises:
            PaymentGatewayError: Gateway not configured or returned an error
            NetworkError: Timeout or connection failure
        """
        if not self.configured:
            raise PaymentGatewayError(message="Payment gateway is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.api_base,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.error(f"Payment gateway timeout on {path}: {e}")
            raise NetworkError(
                message="Payment gateway did not respond in time", path=path
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Payment gateway connection error on {path}: {e}")
            raise NetworkError(message="Could not reach the payment gateway", path=path) from e

        if response.status_code >= 400:
            try:
                description = response.json().get("error", {}).get("description")
            except ValueError:
                description = None
            logger.error(
                f"Payment gateway returned {response.status_code} on {path}: {response.text}"
            )
            raise PaymentGatewayError(
                message=description or "Payment gateway rejected the request",
                gateway_status=response.status_code,
            )
        return response.json()

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        """
        Create a gateway order.

        Args:
            amount: Amount in minor units
            currency: ISO currency code
            receipt: Merchant reference (max 40 chars at the gateway)
            notes: Key/value metadata stored with the order

        Returns:
            GatewayOrder
        """
        data = await self._request(
            "POST",
            "/orders",
            {"amount": amount, "currency": currency, "receipt": receipt[:40], "notes": notes or {}},
        )
        logger.info(f"Created gateway order {data['id']} for {receipt}")
        return GatewayOrder(
            id=data["id"],
            amount=data.get("amount", amount),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )

    async def refund(self, gateway_payment_id: str, amount: Optional[int] = None) -> Dict[str, Any]:
        """
        Refund a captured payment, in full when amount is None.

        Returns:
            Gateway refund entity
        """
        body = {"amount": amount} if amount is not None else {}
        data = await self._request("POST", f"/payments/{gateway_payment_id}/refund", body)
        logger.info(f"Refund {data.get('id')} issued for payment {gateway_payment_id}")
        return data

    def verify_payment_signature(
        self, order_id: str, gateway_payment_id: str, signature: Optional[str]
    ) -> bool:
        """
        Verify a checkout callback signature.

        The expected signature is HMAC-SHA256("<order_id>|<payment_id>")
        keyed with the key secret.

        Returns:
            True only for a matching signature
        """
        if not signature or not self.key_secret:
            return False
        expected = compute_signature(f"{order_id}|{gateway_payment_id}", self.key_secret)
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """
        Verify a webhook signature over the raw request body.

        Returns:
            True only for a matching signature with a configured secret
        """
        if not signature or not self.webhook_secret:
            return False
        expected = hmac.new(self.webhook_secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)


_gateway: Optional[RazorpayGateway] = None


def get_payment_gateway() -> RazorpayGateway:
    """FastAPI dependency returning the process-wide gateway client."""
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway()
    return _gateway

"""
Payment schemas for API request/response validation.

WHAT: Pydantic schemas for checkout orders, verification callbacks and
payment records.

WHY: The checkout widget posts the gateway's callback fields back to us.
Those arrive with the gateway's own names (razorpay_order_id, ...), so
the verify request accepts both those and our camelCase names.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, Field

from client_portal.models.payment import PaymentStatus, PaymentType
from client_portal.models.proposal import Currency
from client_portal.schemas.common import CamelModel


class CreateOrderRequest(CamelModel):
    """Start checkout for the advance or balance payment of a proposal."""

    proposal_id: int = Field(..., gt=0)
    payment_type: PaymentType = PaymentType.ADVANCE


class CheckoutOrderResponse(CamelModel):
    """
    Everything the checkout widget needs.

    gateway_key is the public key id, never the secret.
    """

    payment_id: int
    order_id: str
    amount: int
    currency: str
    gateway_key: str
    payment_type: PaymentType


class VerifyPaymentRequest(CamelModel):
    order_id: str = Field(
        ...,
        max_length=100,
        validation_alias=AliasChoices("orderId", "razorpay_order_id", "order_id"),
    )
    gateway_payment_id: str = Field(
        ...,
        max_length=100,
        validation_alias=AliasChoices(
            "gatewayPaymentId", "paymentId", "razorpay_payment_id", "gateway_payment_id"
        ),
    )
    signature: Optional[str] = Field(
        default=None,
        max_length=255,
        validation_alias=AliasChoices("signature", "razorpay_signature"),
    )


class PaymentResponse(CamelModel):
    id: int
    proposal_id: int
    payment_type: PaymentType
    amount: int
    currency: Currency
    status: PaymentStatus
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class VerifyPaymentResponse(CamelModel):
    verified: bool
    payment: PaymentResponse
    project_id: Optional[int] = None


class PaymentListResponse(CamelModel):
    items: List[PaymentResponse]


class PaymentAdminAction(CamelModel):
    """Reason recorded in the audit log for an admin payment action."""

    reason: str = Field(..., max_length=2000)

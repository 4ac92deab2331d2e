"""
Payment API endpoints.

WHAT: Checkout, verification and admin handling of proposal payments.

WHY: Payments follow the gateway's two-phase pattern:
1. create-order opens a gateway order for the advance or balance
2. The checkout widget collects the money and calls back verify
3. The gateway also posts webhooks, which are applied idempotently

Security: verify and the webhook both check an HMAC-SHA256 signature
before anything is marked completed (OWASP A02).
"""

import json

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.deps import get_current_user
from client_portal.core.exceptions import PaymentVerificationError, ValidationError
from client_portal.core.permissions import Actor
from client_portal.db.session import get_db
from client_portal.schemas.payment import (
    CheckoutOrderResponse,
    CreateOrderRequest,
    PaymentAdminAction,
    PaymentListResponse,
    PaymentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from client_portal.services.lifecycle import LifecycleOrchestrator, VerificationResult
from client_portal.services.payment_gateway import RazorpayGateway, get_payment_gateway


router = APIRouter(prefix="/payments", tags=["payments"])

WEBHOOK_SIGNATURE_HEADER = "X-Razorpay-Signature"


def _orchestrator(
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(db, gateway=gateway)


def _verification_response(result: VerificationResult) -> VerifyPaymentResponse:
    return VerifyPaymentResponse(
        verified=result.verified,
        payment=PaymentResponse.model_validate(result.payment),
        project_id=result.project.id if result.project else None,
    )


@router.post(
    "/create-order",
    response_model=CheckoutOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a gateway order",
)
async def create_order(
    data: CreateOrderRequest,
    actor: Actor = Depends(get_current_user),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> CheckoutOrderResponse:
    """
    Start checkout for the advance or balance payment.

    Raises:
        ConflictError (409): Proposal not accepted, already paid, or the
            balance was requested before the advance
        PaymentGatewayError (502): The gateway refused the order
        NetworkError (503): The gateway could not be reached
    """
    order = await lifecycle.create_payment_order(data.proposal_id, actor, data.payment_type)
    return CheckoutOrderResponse.model_validate(order)


@router.post("/verify", response_model=VerifyPaymentResponse, summary="Verify a payment")
async def verify_payment(
    data: VerifyPaymentRequest,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> VerifyPaymentResponse:
    """
    Verify the checkout callback and complete the payment.

    WHAT: A verified advance converts the inquiry into a project.

    WHY: A rejected signature must still leave the payment marked
    `failed`, so the session is committed before the error is raised.

    Raises:
        PaymentVerificationError (400): Signature did not match
        PaymentNotFoundError (404): Unknown order
    """
    result = await lifecycle.verify_payment(
        data.order_id, data.gateway_payment_id, data.signature, actor
    )
    if not result.verified:
        await db.commit()
        raise PaymentVerificationError(
            payment_id=result.payment.id, order_id=data.order_id
        )
    return _verification_response(result)


@router.post("/webhook", status_code=status.HTTP_200_OK, summary="Gateway webhook")
async def payment_webhook(
    request: Request,
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> dict:
    """
    Apply a payment webhook from the gateway.

    Note: No authentication; the body signature is verified instead.

    Raises:
        PaymentVerificationError (400): Missing or invalid signature
        ValidationError (400): Body is not JSON
    """
    body = await request.body()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER)
    if not lifecycle.gateway.verify_webhook_signature(body, signature):
        raise PaymentVerificationError(message="Invalid webhook signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise ValidationError(message="Webhook body is not valid JSON")
    if not isinstance(event, dict):
        raise ValidationError(message="Webhook body must be an object")

    result = await lifecycle.handle_webhook(event)
    return {"status": "received", **result}


@router.get("", response_model=PaymentListResponse, summary="Payment history of a proposal")
async def list_payments(
    proposal_id: int = Query(..., alias="proposalId", gt=0),
    actor: Actor = Depends(get_current_user),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> PaymentListResponse:
    payments = await lifecycle.list_payments(proposal_id, actor)
    return PaymentListResponse(items=[PaymentResponse.model_validate(p) for p in payments])


@router.post(
    "/{payment_id}/mark-completed",
    response_model=VerifyPaymentResponse,
    summary="Record a payment received outside the gateway",
)
async def mark_completed(
    payment_id: int,
    data: PaymentAdminAction,
    actor: Actor = Depends(get_current_user),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> VerifyPaymentResponse:
    """
    Super admin override, written to the audit log with its reason.

    Raises:
        AuthorizationError (403): Caller is not a super admin
        ConflictError (409): Payment is not pending or failed
    """
    result = await lifecycle.mark_payment_completed(payment_id, actor, data.reason)
    return _verification_response(result)


@router.post(
    "/{payment_id}/refund",
    response_model=PaymentResponse,
    summary="Refund a completed payment",
)
async def refund_payment(
    payment_id: int,
    data: PaymentAdminAction,
    actor: Actor = Depends(get_current_user),
    lifecycle: LifecycleOrchestrator = Depends(_orchestrator),
) -> PaymentResponse:
    """
    Super admin refund. The converted project, if any, is kept.

    Raises:
        ConflictError (409): Payment is not completed
        PaymentGatewayError (502): Gateway refund failed
    """
    payment = await lifecycle.refund_payment(payment_id, actor, data.reason)
    return PaymentResponse.model_validate(payment)

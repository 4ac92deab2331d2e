"""
Lifecycle Orchestrator.

WHAT: The operations that move an inquiry, its proposal and its payments
together: proposal creation and resend, client responses, payment orders,
payment verification and conversion into a project.

WHY: These are the only writes that touch more than one state machine.
Each one must either change every entity involved or none of them:
1. Every transition is planned against both state machines before the
   first write, so an illegal event fails with nothing written
2. Each write is guarded by the status it was planned against
3. Any failure propagates to the request, whose transaction is rolled back

HOW: Composes InquiryService and ProposalService for single-entity writes
and the DAOs for payments and projects. The acting user is always an
explicit Actor argument. Activity, notification and Slack side effects
run after the writes and never fail the operation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
    StaleProposalError,
    ValidationError,
)
from client_portal.core.permissions import Action, Actor, can, require
from client_portal.dao.payment import PaymentDAO
from client_portal.dao.project import ProjectDAO
from client_portal.models.activity import ActivityType
from client_portal.models.audit_log import AuditAction
from client_portal.models.inquiry import Inquiry, InquiryStatus
from client_portal.models.payment import Payment, PaymentStatus, PaymentType
from client_portal.models.project import Project, ProjectStatus
from client_portal.models.proposal import Proposal, ProposalStatus
from client_portal.services import inquiry_state, proposal_state
from client_portal.services.activity_service import ActivityService
from client_portal.services.audit import AuditService
from client_portal.services.inquiry_service import InquiryService
from client_portal.services.inquiry_state import InquiryEvent
from client_portal.services.notification_service import (
    NotificationPayload,
    NotificationService,
    NotificationType,
)
from client_portal.services.payment_gateway import RazorpayGateway
from client_portal.services.pricing import format_amount
from client_portal.services.proposal_service import ProposalService
from client_portal.services.proposal_state import ProposalEvent

logger = logging.getLogger(__name__)

# Proposal event -> inquiry event it cascades to
RESPONSE_CASCADE = {
    ProposalEvent.ACCEPT: InquiryEvent.PROPOSAL_ACCEPTED,
    ProposalEvent.REJECT: InquiryEvent.REJECT,
    ProposalEvent.REQUEST_CHANGES: InquiryEvent.CHANGES_REQUESTED,
}

RESPONSE_ACTIVITY = {
    ProposalEvent.ACCEPT: (
        ActivityType.PROPOSAL_ACCEPTED,
        NotificationType.PROPOSAL_ACCEPTED,
        "Proposal accepted",
        "accepted",
    ),
    ProposalEvent.REJECT: (
        ActivityType.PROPOSAL_REJECTED,
        NotificationType.PROPOSAL_REJECTED,
        "Proposal rejected",
        "rejected",
    ),
    ProposalEvent.REQUEST_CHANGES: (
        ActivityType.PROPOSAL_CHANGES_REQUESTED,
        NotificationType.PROPOSAL_CHANGES_REQUESTED,
        "Changes requested",
        "requested changes to",
    ),
}

OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


@dataclass
class CheckoutOrder:
    """What the checkout widget needs to collect a payment."""

    payment_id: int
    order_id: str
    amount: int
    currency: str
    gateway_key: str
    payment_type: PaymentType


@dataclass
class VerificationResult:
    """
    Outcome of a payment verification.

    A rejected signature is an outcome, not an exception, so the caller
    can persist the failed payment before reporting the error.
    """

    payment: Payment
    verified: bool
    project: Optional[Project] = None


class LifecycleOrchestrator:
    """
    Coordinates inquiry, proposal and payment transitions.

    Attributes:
        inquiries: Inquiry reads and guarded transitions
        proposals: Proposal reads and edits
        gateway: Payment gateway adapter
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[RazorpayGateway] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.session = session
        self.activity = ActivityService(session)
        self.audit = AuditService(session)
        self.notifications = notifications or NotificationService(session)
        self.inquiries = InquiryService(session, self.activity, self.notifications)
        self.proposals = ProposalService(session, self.audit, self.activity)
        self.payment_dao = PaymentDAO(session)
        self.project_dao = ProjectDAO(session)
        self.gateway = gateway or RazorpayGateway()

    # =========================================================================
    # Proposal creation and resend
    # =========================================================================

    async def create_proposal(
        self, inquiry_id: int, actor: Actor, data: Dict[str, Any]
    ) -> Proposal:
        """
        Create the proposal for an inquiry and send it to the client.

        WHAT: Proposal is created in `sent` at version 1 and the inquiry
        moves to `proposal_sent` with proposal_id set, in one transaction.

        Raises:
            AuthorizationError: Caller is not a super admin
            ConflictError: Inquiry already has a proposal, or its status
                does not allow sending one
            ValidationError: Invalid proposal content
        """
        inquiry = await self.inquiries.get(inquiry_id)
        require(actor, Action.CREATE_PROPOSAL, inquiry)

        if inquiry.proposal_id is not None:
            raise ConflictError(
                message="Inquiry already has a proposal; revise and resend it instead",
                inquiry_id=inquiry.id,
                proposal_id=inquiry.proposal_id,
            )
        inquiry_state.next_status(inquiry.status, InquiryEvent.PROPOSAL_CREATED)
        values = proposal_state.validate_content(data)

        proposal = await self.proposals.dao.create(
            inquiry_id=inquiry.id,
            status=ProposalStatus.SENT,
            version=1,
            lock_version=1,
            edit_history=[],
            created_by_user_id=actor.id,
            **values,
        )
        inquiry = await self.inquiries.transition(
            inquiry, InquiryEvent.PROPOSAL_CREATED, {"proposal_id": proposal.id}
        )

        logger.info(
            f"Proposal {proposal.id} created for inquiry {inquiry.inquiry_number}",
            extra={"proposal_id": proposal.id, "inquiry_id": inquiry.id, "actor_id": actor.id},
        )
        await self.activity.record(
            ActivityType.PROPOSAL_CREATED,
            actor,
            target_id=proposal.id,
            details={
                "inquiry_number": inquiry.inquiry_number,
                "total_price": proposal.total_price,
                "currency": proposal.currency.value,
            },
        )
        await self._notify_client(
            inquiry,
            NotificationPayload(
                type=NotificationType.PROPOSAL_SENT,
                title="Your proposal is ready",
                message=f"A proposal for {inquiry.inquiry_number} is waiting for your review",
                target_entity_id=proposal.id,
            ),
        )
        return proposal

    async def resend_proposal(
        self,
        proposal_id: int,
        actor: Actor,
        expected_lock_version: Optional[int] = None,
    ) -> Proposal:
        """
        Resend a revised proposal.

        WHAT: changes_requested -> sent with version + 1 in the same
        write; the inquiry moves negotiating -> proposal_sent keeping the
        same proposal_id.

        Raises:
            AuthorizationError: Caller is not a super admin
            InvalidStateTransitionError: Proposal is not awaiting a resend
            StaleProposalError: Concurrent modification
        """
        proposal, inquiry = await self.proposals.get_with_inquiry(proposal_id)
        require(actor, Action.RESEND_PROPOSAL, inquiry)

        target = proposal_state.next_status(proposal.status, ProposalEvent.RESEND)
        inquiry_state.next_status(inquiry.status, InquiryEvent.PROPOSAL_RESENT)
        lock_version = self._check_lock_version(proposal, expected_lock_version)

        updated = await self.proposals.dao.update_where(
            proposal.id,
            {"status": proposal.status, "version": proposal.version, "lock_version": lock_version},
            status=target,
            version=proposal.version + 1,
            lock_version=lock_version + 1,
        )
        if updated is None:
            raise StaleProposalError(proposal_id=proposal.id)
        await self.inquiries.transition(
            inquiry, InquiryEvent.PROPOSAL_RESENT, {"proposal_id": proposal.id}
        )

        logger.info(
            f"Proposal {proposal.id} resent as version {updated.version}",
            extra={"proposal_id": proposal.id, "actor_id": actor.id},
        )
        await self.activity.record(
            ActivityType.PROPOSAL_RESENT,
            actor,
            target_id=proposal.id,
            details={"version": updated.version},
        )
        await self._notify_client(
            inquiry,
            NotificationPayload(
                type=NotificationType.PROPOSAL_SENT,
                title="Your revised proposal is ready",
                message=f"Version {updated.version} of your proposal is waiting for your review",
                target_entity_id=proposal.id,
            ),
        )
        return updated

    # =========================================================================
    # Client responses
    # =========================================================================

    async def accept_proposal(
        self, proposal_id: int, actor: Actor, expected_lock_version: Optional[int] = None
    ) -> Proposal:
        """
        Client accepts a sent proposal.

        WHAT: Proposal -> accepted with accepted_at, inquiry -> accepted,
        and a pending advance payment is created, all in one transaction.
        """
        return await self.respond(
            proposal_id, actor, ProposalEvent.ACCEPT, expected_lock_version=expected_lock_version
        )

    async def reject_proposal(
        self,
        proposal_id: int,
        actor: Actor,
        feedback: Optional[str],
        expected_lock_version: Optional[int] = None,
    ) -> Proposal:
        """Client rejects a sent proposal; feedback is required."""
        return await self.respond(
            proposal_id, actor, ProposalEvent.REJECT, feedback, expected_lock_version
        )

    async def request_changes(
        self,
        proposal_id: int,
        actor: Actor,
        feedback: Optional[str],
        expected_lock_version: Optional[int] = None,
    ) -> Proposal:
        """Client asks for a revision; feedback is required."""
        return await self.respond(
            proposal_id, actor, ProposalEvent.REQUEST_CHANGES, feedback, expected_lock_version
        )

    async def respond(
        self,
        proposal_id: int,
        actor: Actor,
        event: ProposalEvent,
        feedback: Optional[str] = None,
        expected_lock_version: Optional[int] = None,
    ) -> Proposal:
        """
        Apply a client response to a proposal and cascade it to the inquiry.

        Args:
            proposal_id: Proposal being answered
            actor: Responding client
            event: ACCEPT, REJECT or REQUEST_CHANGES
            feedback: Client's reason (required for reject / request changes)
            expected_lock_version: lock_version the client was looking at

        Returns:
            Updated proposal

        Raises:
            AuthorizationError: Caller may not respond for this inquiry
            InvalidStateTransitionError: Proposal is not `sent`, or the
                inquiry cannot follow; nothing is written
            ValidationError: Missing feedback
            StaleProposalError: Proposal changed since the client read it
        """
        if event not in RESPONSE_CASCADE:
            raise ValidationError(message=f"'{event.value}' is not a client response", field="event")

        proposal, inquiry = await self.proposals.get_with_inquiry(proposal_id)
        require(actor, Action.RESPOND_TO_PROPOSAL, inquiry)

        target = proposal_state.next_status(proposal.status, event)
        inquiry_event = RESPONSE_CASCADE[event]
        inquiry_state.next_status(inquiry.status, inquiry_event)
        cleaned_feedback = proposal_state.require_feedback(event, feedback)
        lock_version = self._check_lock_version(proposal, expected_lock_version)

        now = datetime.utcnow()
        values: Dict[str, Any] = {"status": target, "lock_version": lock_version + 1}
        if event == ProposalEvent.ACCEPT:
            values["accepted_at"] = now
        if event == ProposalEvent.REJECT:
            values["rejected_at"] = now
        if cleaned_feedback is not None:
            values["feedback"] = cleaned_feedback

        updated = await self.proposals.dao.update_where(
            proposal.id,
            {"status": proposal.status, "lock_version": lock_version},
            **values,
        )
        if updated is None:
            raise StaleProposalError(proposal_id=proposal.id)
        inquiry = await self.inquiries.transition(inquiry, inquiry_event)

        if event == ProposalEvent.ACCEPT:
            await self._create_payment(updated, PaymentType.ADVANCE)

        logger.info(
            f"Proposal {proposal.id}: {event.value} by user {actor.id}",
            extra={"proposal_id": proposal.id, "inquiry_id": inquiry.id, "event": event.value},
        )
        activity_type, notification_type, title, verb = RESPONSE_ACTIVITY[event]
        await self.activity.record(
            activity_type,
            actor,
            target_id=proposal.id,
            details={"feedback": cleaned_feedback, "version": updated.version},
        )
        await self.notifications.notify_staff(
            NotificationPayload(
                type=notification_type,
                title=title,
                message=f"{actor.name} {verb} the proposal for {inquiry.inquiry_number}"
                + (f": {cleaned_feedback}" if cleaned_feedback else ""),
                target_entity_id=proposal.id,
            ),
            exclude_user_id=actor.id,
            link_url=self.notifications.proposal_url(proposal.id),
        )
        return updated

    def _check_lock_version(self, proposal: Proposal, expected: Optional[int]) -> int:
        if expected is not None and expected != proposal.lock_version:
            raise StaleProposalError(
                proposal_id=proposal.id,
                expected_lock_version=expected,
                current_lock_version=proposal.lock_version,
            )
        return proposal.lock_version

    # =========================================================================
    # Payments
    # =========================================================================

    async def _create_payment(self, proposal: Proposal, payment_type: PaymentType) -> Payment:
        amount = (
            proposal.advance_amount if payment_type == PaymentType.ADVANCE else proposal.balance_amount
        )
        payment = await self.payment_dao.create(
            proposal_id=proposal.id,
            payment_type=payment_type,
            amount=amount,
            currency=proposal.currency,
            status=PaymentStatus.PENDING,
        )
        logger.info(
            f"Pending {payment_type.value} payment {payment.id} created for proposal {proposal.id}",
            extra={"payment_id": payment.id, "proposal_id": proposal.id},
        )
        return payment

    async def _load_payment_context(self, payment: Payment):
        proposal, inquiry = await self.proposals.get_with_inquiry(payment.proposal_id)
        return proposal, inquiry

    async def list_payments(self, proposal_id: int, actor: Actor) -> List[Payment]:
        """Payment history of a proposal, oldest first."""
        _, inquiry = await self.proposals.get_with_inquiry(proposal_id)
        require(actor, Action.VIEW_PAYMENTS, inquiry)
        return await self.payment_dao.list_for_proposal(proposal_id)

    async def create_payment_order(
        self, proposal_id: int, actor: Actor, payment_type: PaymentType
    ) -> CheckoutOrder:
        """
        Open a gateway order for the advance or balance payment.

        WHAT: Reuses the open (pending or failed) payment row of that type,
        creating the balance row on first use, and attaches a fresh gateway
        order id to it.

        Raises:
            AuthorizationError: Caller may not pay for this inquiry
            ConflictError: Proposal not accepted, payment already made, or
                balance requested before the advance is paid
            InvalidStateTransitionError: Inquiry can no longer be converted
                by an advance payment
            PaymentGatewayError / NetworkError: Gateway failure
        """
        proposal, inquiry = await self.proposals.get_with_inquiry(proposal_id)
        require(actor, Action.CREATE_PAYMENT_ORDER, inquiry)

        if proposal.status != ProposalStatus.ACCEPTED:
            raise ConflictError(
                message="Payments can only be made for an accepted proposal",
                proposal_id=proposal.id,
                current_status=ProposalStatus(proposal.status).value,
            )
        if await self.payment_dao.has_completed(proposal.id, payment_type):
            raise ConflictError(
                message=f"The {payment_type.value} payment has already been made",
                proposal_id=proposal.id,
            )
        if payment_type == PaymentType.BALANCE and not await self.payment_dao.has_completed(
            proposal.id, PaymentType.ADVANCE
        ):
            raise ConflictError(
                message="The advance must be paid before the balance",
                proposal_id=proposal.id,
            )
        if payment_type == PaymentType.ADVANCE:
            # The inquiry must still be convertible once the money arrives
            inquiry_state.next_status(inquiry.status, InquiryEvent.ADVANCE_PAID)

        payment = await self.payment_dao.get_open_payment(proposal.id, payment_type)
        if payment is None:
            payment = await self._create_payment(proposal, payment_type)

        currency = getattr(payment.currency, "value", payment.currency)
        order = await self.gateway.create_order(
            amount=payment.amount,
            currency=currency,
            receipt=f"{inquiry.inquiry_number}-{payment_type.value}",
            notes={
                "proposal_id": str(proposal.id),
                "payment_id": str(payment.id),
                "payment_type": payment_type.value,
            },
        )
        payment = await self.payment_dao.update_where(
            payment.id,
            {"status": payment.status},
            gateway_order_id=order.id,
            status=PaymentStatus.PENDING,
            failure_reason=None,
        )
        if payment is None:
            raise ConflictError(message="Payment changed while creating the order")

        logger.info(
            f"Order {order.id} opened for payment {payment.id}",
            extra={"payment_id": payment.id, "order_id": order.id},
        )
        return CheckoutOrder(
            payment_id=payment.id,
            order_id=order.id,
            amount=payment.amount,
            currency=currency,
            gateway_key=self.gateway.key_id,
            payment_type=payment_type,
        )

    async def verify_payment(
        self,
        order_id: str,
        gateway_payment_id: str,
        signature: Optional[str],
        actor: Actor,
    ) -> VerificationResult:
        """
        Verify a checkout callback and complete the payment.

        WHAT: The signature is checked before anything is marked
        completed. An invalid signature marks the payment failed and
        leaves the inquiry untouched. A valid advance payment converts
        the inquiry into a project.

        Returns:
            VerificationResult; verified=False for a rejected signature

        Raises:
            PaymentNotFoundError: Unknown order id
            AuthorizationError: Caller may not pay for this inquiry
            ConflictError: Payment already refunded or completed with a
                different gateway payment
        """
        payment = await self.payment_dao.get_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFoundError(order_id=order_id)
        proposal, inquiry = await self._load_payment_context(payment)
        if not (
            can(actor, Action.CREATE_PAYMENT_ORDER, inquiry)
            or can(actor, Action.MANAGE_PAYMENTS, inquiry)
        ):
            raise AuthorizationError(action=Action.CREATE_PAYMENT_ORDER.value, user_id=actor.id)

        if payment.status == PaymentStatus.COMPLETED:
            if payment.gateway_payment_id == gateway_payment_id:
                return VerificationResult(payment=payment, verified=True)
            raise ConflictError(message="Payment is already completed", payment_id=payment.id)
        if payment.status not in OPEN_PAYMENT_STATUSES:
            raise ConflictError(
                message=f"Payment is {PaymentStatus(payment.status).value}",
                payment_id=payment.id,
            )

        if not self.gateway.verify_payment_signature(order_id, gateway_payment_id, signature):
            failed = await self._fail_payment(
                payment, "Signature verification failed", gateway_payment_id, signature
            )
            await self.audit.log_payment_event(
                AuditAction.PAYMENT_VERIFICATION_FAILED,
                payment.id,
                actor_user_id=actor.id,
                extra_data={"order_id": order_id, "gateway_payment_id": gateway_payment_id},
            )
            return VerificationResult(payment=failed, verified=False)

        payment, project = await self._complete_payment(
            payment, proposal, inquiry, actor, gateway_payment_id, signature
        )
        await self.audit.log_payment_event(
            AuditAction.PAYMENT_VERIFIED,
            payment.id,
            actor_user_id=actor.id,
            extra_data={"order_id": order_id, "gateway_payment_id": gateway_payment_id},
        )
        return VerificationResult(payment=payment, verified=True, project=project)

    async def handle_webhook(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a signature-verified gateway webhook.

        Handles payment.captured (complete) and payment.failed (mark
        failed unless already completed or refunded). Unknown orders and
        repeated deliveries are acknowledged without changes.

        Args:
            event: Parsed webhook body

        Returns:
            Summary of what was done, for the webhook response
        """
        name = event.get("event")
        payment_body = (event.get("payload") or {}).get("payment") or {}
        entity = payment_body.get("entity") or {}
        order_id = entity.get("order_id")
        if name not in ("payment.captured", "payment.failed") or not order_id:
            return {"event": name, "handled": False}

        payment = await self.payment_dao.get_by_order_id(order_id)
        if payment is None:
            logger.warning(f"Webhook {name} for unknown order {order_id}")
            return {"event": name, "handled": False}

        if name == "payment.failed":
            if payment.status in OPEN_PAYMENT_STATUSES:
                reason = entity.get("error_description") or entity.get("error_code") or "Payment failed"
                await self._fail_payment(payment, reason, entity.get("id"), None)
            return {"event": name, "handled": True, "payment_id": payment.id}

        if payment.status in OPEN_PAYMENT_STATUSES:
            proposal, inquiry = await self._load_payment_context(payment)
            await self._complete_payment(payment, proposal, inquiry, None, entity.get("id"), None)
        return {"event": name, "handled": True, "payment_id": payment.id}

    async def mark_payment_completed(
        self, payment_id: int, actor: Actor, reason: Optional[str]
    ) -> VerificationResult:
        """
        Admin override: record a payment received outside the gateway.

        Raises:
            AuthorizationError: Caller is not a super admin
            ValidationError: Missing reason
            ConflictError: Payment is not pending or failed
        """
        payment = await self.payment_dao.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id=payment_id)
        proposal, inquiry = await self._load_payment_context(payment)
        require(actor, Action.MANAGE_PAYMENTS, inquiry)

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(message="A reason is required", field="reason")
        if payment.status not in OPEN_PAYMENT_STATUSES:
            raise ConflictError(
                message=f"Payment is {PaymentStatus(payment.status).value}",
                payment_id=payment.id,
            )

        previous = PaymentStatus(payment.status).value
        payment, project = await self._complete_payment(payment, proposal, inquiry, actor, None, None)
        await self.audit.log_payment_event(
            AuditAction.ADMIN_OVERRIDE,
            payment.id,
            actor_user_id=actor.id,
            changes={"status": {"before": previous, "after": PaymentStatus.COMPLETED.value}},
            extra_data={"reason": reason},
        )
        return VerificationResult(payment=payment, verified=True, project=project)

    async def refund_payment(
        self, payment_id: int, actor: Actor, reason: Optional[str]
    ) -> Payment:
        """
        Admin refund of a completed payment.

        Payments collected through the gateway are refunded there first.
        The inquiry and any converted project are left as they are.

        Raises:
            AuthorizationError: Caller is not a super admin
            ValidationError: Missing reason
            ConflictError: Payment is not completed
            PaymentGatewayError / NetworkError: Gateway refund failed
        """
        payment = await self.payment_dao.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id=payment_id)
        _, inquiry = await self._load_payment_context(payment)
        require(actor, Action.MANAGE_PAYMENTS, inquiry)

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(message="A reason is required", field="reason")
        if payment.status != PaymentStatus.COMPLETED:
            raise ConflictError(
                message="Only completed payments can be refunded",
                payment_id=payment.id,
                current_status=PaymentStatus(payment.status).value,
            )

        refund_id = None
        if payment.gateway_payment_id:
            refund = await self.gateway.refund(payment.gateway_payment_id, payment.amount)
            refund_id = refund.get("id")

        refunded = await self.payment_dao.update_where(
            payment.id,
            {"status": PaymentStatus.COMPLETED},
            status=PaymentStatus.REFUNDED,
            refunded_at=datetime.utcnow(),
        )
        if refunded is None:
            raise ConflictError(message="Payment changed during refund", payment_id=payment.id)

        logger.info(
            f"Payment {payment.id} refunded by user {actor.id}",
            extra={"payment_id": payment.id, "refund_id": refund_id},
        )
        await self.audit.log_payment_event(
            AuditAction.PAYMENT_REFUNDED,
            payment.id,
            actor_user_id=actor.id,
            changes={"status": {"before": "completed", "after": "refunded"}},
            extra_data={"reason": reason, "refund_id": refund_id},
        )
        await self.activity.record(
            ActivityType.PAYMENT_REFUNDED,
            actor,
            target_id=payment.id,
            details={"amount": payment.amount, "reason": reason},
        )
        return refunded

    async def _fail_payment(
        self,
        payment: Payment,
        reason: str,
        gateway_payment_id: Optional[str],
        signature: Optional[str],
    ) -> Payment:
        values: Dict[str, Any] = {"status": PaymentStatus.FAILED, "failure_reason": reason}
        if gateway_payment_id:
            values["gateway_payment_id"] = gateway_payment_id
        if signature:
            values["gateway_signature"] = signature
        failed = await self.payment_dao.update_where(payment.id, {"status": payment.status}, **values)
        if failed is None:
            raise ConflictError(message="Payment changed concurrently", payment_id=payment.id)

        logger.warning(
            f"Payment {payment.id} failed: {reason}",
            extra={"payment_id": payment.id, "order_id": payment.gateway_order_id},
        )
        await self.activity.record(
            ActivityType.PAYMENT_FAILED,
            None,
            target_id=payment.id,
            details={"reason": reason, "order_id": payment.gateway_order_id},
        )
        return failed

    async def _complete_payment(
        self,
        payment: Payment,
        proposal: Proposal,
        inquiry: Inquiry,
        actor: Optional[Actor],
        gateway_payment_id: Optional[str],
        signature: Optional[str],
    ):
        """
        Mark a payment completed and convert the inquiry for an advance.

        Returns:
            (completed payment, created project or None)
        """
        is_advance = payment.payment_type == PaymentType.ADVANCE
        converts = is_advance and InquiryStatus(inquiry.status) != InquiryStatus.CONVERTED
        if converts and InquiryEvent.ADVANCE_PAID not in inquiry_state.allowed_events(inquiry.status):
            # Captured money is recorded even when the inquiry was closed meanwhile
            converts = False
            logger.error(
                f"Payment {payment.id} captured for inquiry {inquiry.id} in status "
                f"{InquiryStatus(inquiry.status).value}; conversion skipped",
                extra={"payment_id": payment.id, "inquiry_id": inquiry.id},
            )
            await self.notifications.notify_staff(
                NotificationPayload(
                    type=NotificationType.PAYMENT_RECEIVED,
                    title="Payment needs review",
                    message=f"An advance was paid for {inquiry.inquiry_number}, which is "
                    f"{InquiryStatus(inquiry.status).value}; the inquiry was not converted",
                    target_entity_id=proposal.id,
                ),
                link_url=self.notifications.proposal_url(proposal.id),
            )

        completed = await self.payment_dao.update_where(
            payment.id,
            {"status": payment.status},
            status=PaymentStatus.COMPLETED,
            paid_at=datetime.utcnow(),
            gateway_payment_id=gateway_payment_id or payment.gateway_payment_id,
            gateway_signature=signature or payment.gateway_signature,
            failure_reason=None,
        )
        if completed is None:
            raise ConflictError(message="Payment changed concurrently", payment_id=payment.id)

        project = await self._convert(inquiry, proposal, actor) if converts else None

        logger.info(
            f"Payment {payment.id} completed ({payment.payment_type.value})",
            extra={"payment_id": payment.id, "proposal_id": proposal.id},
        )
        await self.activity.record(
            ActivityType.PAYMENT_COMPLETED,
            actor,
            target_id=payment.id,
            details={
                "amount": payment.amount,
                "payment_type": payment.payment_type.value,
                "proposal_id": proposal.id,
            },
        )
        await self.notifications.notify_staff(
            NotificationPayload(
                type=NotificationType.PAYMENT_RECEIVED,
                title="Payment received",
                message=f"{payment.payment_type.value.capitalize()} payment of "
                f"{format_amount(payment.amount, payment.currency)} received for {inquiry.inquiry_number}",
                target_entity_id=proposal.id,
            ),
            link_url=self.notifications.proposal_url(proposal.id),
        )
        return completed, project

    async def _convert(
        self, inquiry: Inquiry, proposal: Proposal, actor: Optional[Actor]
    ) -> Project:
        """
        Convert a paid inquiry into a live project.

        WHAT: Creates the project (deliverables copied with their ids)
        and moves the inquiry to `converted` with converted_to_project_id
        and converted_at written together.
        """
        project = await self.project_dao.create(
            name=_project_name(inquiry),
            inquiry_id=inquiry.id,
            proposal_id=proposal.id,
            client_user_id=inquiry.client_user_id,
            deliverables=[dict(d) for d in (proposal.deliverables or [])],
            status=ProjectStatus.ACTIVE,
        )
        try:
            await self.inquiries.transition(
                inquiry,
                InquiryEvent.ADVANCE_PAID,
                {"converted_to_project_id": project.id, "converted_at": datetime.utcnow()},
            )
        except InvalidStateTransitionError:
            logger.error(
                f"Inquiry {inquiry.id} could not be converted after payment",
                extra={"inquiry_id": inquiry.id, "project_id": project.id},
            )
            raise

        logger.info(
            f"Inquiry {inquiry.inquiry_number} converted to project {project.id}",
            extra={"inquiry_id": inquiry.id, "project_id": project.id},
        )
        await self.activity.record(
            ActivityType.INQUIRY_CONVERTED,
            actor,
            target_id=inquiry.id,
            details={"project_id": project.id, "proposal_id": proposal.id},
        )
        return project

    async def _notify_client(self, inquiry: Inquiry, payload: NotificationPayload) -> None:
        if inquiry.client_user_id is not None:
            await self.notifications.notify(inquiry.client_user_id, payload)


def _project_name(inquiry: Inquiry) -> str:
    who = inquiry.company_name or inquiry.contact_name
    what = inquiry.recommended_video_type or "Video project"
    return f"{who} - {what}"[:255]

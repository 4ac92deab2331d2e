"""
Payment Reminder Background Service.

WHAT: Scheduled job that reminds clients about advance payments still
pending a while after they accepted a proposal.

WHY: An accepted proposal only becomes a project once the advance is
paid. A nudge after PAYMENT_REMINDER_AFTER_HOURS recovers checkouts that
were abandoned halfway.

HOW: Runs on the APScheduler interval, opens its own database session,
and sends one best-effort notification per stale payment.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from client_portal.core.config import settings
from client_portal.dao.inquiry import InquiryDAO
from client_portal.dao.payment import PaymentDAO
from client_portal.dao.proposal import ProposalDAO
from client_portal.db.session import AsyncSessionLocal
from client_portal.models.payment import PaymentType
from client_portal.models.proposal import ProposalStatus
from client_portal.services.notification_service import (
    NotificationPayload,
    NotificationService,
    NotificationType,
)
from client_portal.services.pricing import format_amount

logger = logging.getLogger(__name__)


class PaymentReminderService:
    """
    Finds stale pending advance payments and reminds their clients.

    Example:
        service = PaymentReminderService()
        await service.send_payment_reminders()
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        after_hours: Optional[int] = None,
    ):
        """
        Args:
            session_factory: Factory for job sessions (defaults to the app's)
            after_hours: Age after which a pending advance is reminded
        """
        self._session_factory = session_factory or AsyncSessionLocal
        self.after_hours = after_hours or settings.PAYMENT_REMINDER_AFTER_HOURS

    async def send_payment_reminders(self) -> Dict[str, int]:
        """
        Main job function.

        Returns:
            Counts of reminders sent, payments skipped and errors
        """
        logger.info("Starting payment reminder job")
        stats = {"sent": 0, "skipped": 0, "errors": 0}
        cutoff = datetime.utcnow() - timedelta(hours=self.after_hours)

        session = self._session_factory()
        try:
            payments = await PaymentDAO(session).get_stale_pending(PaymentType.ADVANCE, cutoff)
            proposal_dao = ProposalDAO(session)
            inquiry_dao = InquiryDAO(session)
            notifications = NotificationService(session)

            for payment in payments:
                try:
                    proposal = await proposal_dao.get_by_id(payment.proposal_id)
                    if proposal is None or proposal.status != ProposalStatus.ACCEPTED:
                        stats["skipped"] += 1
                        continue
                    inquiry = await inquiry_dao.get_by_id(proposal.inquiry_id)
                    if inquiry is None or inquiry.client_user_id is None:
                        stats["skipped"] += 1
                        continue

                    notification = await notifications.notify(
                        inquiry.client_user_id,
                        NotificationPayload(
                            type=NotificationType.PAYMENT_REMINDER,
                            title="Advance payment pending",
                            message=f"Your advance of {format_amount(payment.amount, payment.currency)} "
                            f"for {inquiry.inquiry_number} is still pending",
                            target_entity_id=proposal.id,
                        ),
                    )
                    stats["sent" if notification else "errors"] += 1
                except Exception as e:
                    logger.error(f"Error sending reminder for payment {payment.id}: {e}")
                    stats["errors"] += 1

            await session.commit()
        except Exception as e:
            logger.error(f"Error in payment reminder job: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()

        logger.info(
            f"Payment reminder job completed. Sent: {stats['sent']}, "
            f"skipped: {stats['skipped']}, errors: {stats['errors']}"
        )
        return stats


_reminder_service: Optional[PaymentReminderService] = None


def get_payment_reminder_service() -> PaymentReminderService:
    """Process-wide reminder service."""
    global _reminder_service
    if _reminder_service is None:
        _reminder_service = PaymentReminderService()
    return _reminder_service

"""
Client notifications triggered by the booking ledger.

The ledger never sends anything itself; it returns directives
(SEND_AFTERCARE, SEND_RESCHEDULE_NOTICE) and the booking service hands them
to NotificationService after the booking has been committed. Delivery is
best effort: a failed send is logged and counted, never raised.
"""
import enum
from abc import ABC, abstractmethod
from typing import Dict, Optional, Union

from lashdesk.lib.currency import format_currency
from lashdesk.lib.logging import get_logger
from lashdesk.lib.metrics import get_metrics_collector
from lashdesk.schemas.booking import RegularBooking, WalkInBooking
from lashdesk.services.booking_ledger import Directive


logger = get_logger(__name__)

AnyBooking = Union[RegularBooking, WalkInBooking]


class NotificationKind(str, enum.Enum):
    AFTERCARE = "aftercare"
    RESCHEDULE_NOTICE = "reschedule_notice"


class NotificationProvider(ABC):
    """
    Abstract base class for notification delivery providers.
    """

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        message: str,
        **kwargs
    ) -> bool:
        """
        Send notification via this provider.

        Args:
            to: Recipient email address
            subject: Message subject line
            message: Plain-text body
            **kwargs: Provider-specific parameters

        Returns:
            True if sent successfully, False otherwise
        """
        pass


class ConsoleEmailProvider(NotificationProvider):
    """
    Console email provider for development/testing.
    Logs messages instead of sending them.
    """

    def __init__(self):
        self.sent: list = []

    async def send(
        self,
        to: str,
        subject: str,
        message: str,
        **kwargs
    ) -> bool:
        self.sent.append({"to": to, "subject": subject, "message": message})
        logger.info(
            f"Email logged to console: {subject}",
            extra={"to": to, "body": message},
        )
        return True


def _format_slot(booking: AnyBooking) -> str:
    return booking.time_slot.strftime("%I:%M %p").lstrip("0")


def aftercare_message(booking: AnyBooking) -> Dict[str, str]:
    return {
        "subject": "Thank you! Your lash aftercare guide",
        "message": (
            f"Hi {booking.client_name or 'there'},\n\n"
            f"Your {booking.service or 'appointment'} on {booking.date} is paid in full "
            f"({format_currency(booking.final_price)}). Keep your lashes dry for the "
            "first 24 hours, avoid oil-based products and brush them gently every "
            "morning.\n\nSee you at your next refill!"
        ),
    }


def reschedule_message(booking: AnyBooking) -> Dict[str, str]:
    return {
        "subject": "Your appointment has been rescheduled",
        "message": (
            f"Hi {booking.client_name or 'there'},\n\n"
            f"Your {booking.service or 'appointment'} is now on {booking.date} at "
            f"{_format_slot(booking)}. Your deposit of {format_currency(booking.deposit)} "
            "carries over to the new slot."
        ),
    }


class NotificationService:
    """
    Sends the client-facing messages requested by ledger directives.
    """

    _DIRECTIVE_KINDS = {
        Directive.SEND_AFTERCARE: NotificationKind.AFTERCARE,
        Directive.SEND_RESCHEDULE_NOTICE: NotificationKind.RESCHEDULE_NOTICE,
    }

    def __init__(self, provider: Optional[NotificationProvider] = None):
        self.provider = provider or ConsoleEmailProvider()
        self.metrics = get_metrics_collector()

    async def _deliver(self, kind: NotificationKind, booking: AnyBooking, content: Dict[str, str]) -> bool:
        if not booking.client_email:
            logger.warning(
                "Booking has no client email, notification skipped",
                extra={"booking_id": booking.id, "kind": kind.value},
            )
            self.metrics.increment_notifications(kind.value, "skipped")
            return False

        try:
            success = await self.provider.send(booking.client_email, content["subject"], content["message"])
        except Exception as e:
            logger.error(
                f"Error sending {kind.value} notification: {e}",
                extra={"booking_id": booking.id},
                exc_info=True,
            )
            success = False

        self.metrics.increment_notifications(kind.value, "sent" if success else "failed")
        if success:
            logger.info("Notification sent", extra={"booking_id": booking.id, "kind": kind.value})
        else:
            logger.warning("Notification not delivered", extra={"booking_id": booking.id, "kind": kind.value})
        return success

    async def send_aftercare(self, booking: AnyBooking) -> bool:
        return await self._deliver(NotificationKind.AFTERCARE, booking, aftercare_message(booking))

    async def send_reschedule_notice(self, booking: AnyBooking) -> bool:
        return await self._deliver(NotificationKind.RESCHEDULE_NOTICE, booking, reschedule_message(booking))

    async def dispatch(self, directive: Directive, booking: AnyBooking) -> bool:
        """Run the side effect a ledger directive asks for."""
        kind = self._DIRECTIVE_KINDS[directive]
        if kind == NotificationKind.AFTERCARE:
            return await self.send_aftercare(booking)
        return await self.send_reschedule_notice(booking)

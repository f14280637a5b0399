"""
Booking service - runs ledger operations against stored bookings.

Every operation follows the same steps:
1. Re-read the booking row with SELECT ... FOR UPDATE
2. Run the pure ledger function on the fresh record
3. Write the new record back and commit
4. Dispatch the directives the ledger returned (aftercare, reschedule notice)

Notifications run after the commit. A failed send is reported in the outcome
and never undoes the booking change.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from lashdesk.lib.currency import format_currency, round_amount
from lashdesk.lib.errors import BadRequestException, BookingNotActionable, InvalidAmount, NotFoundException
from lashdesk.lib.logging import get_logger
from lashdesk.lib.metrics import get_metrics_collector
from lashdesk.models.bookings import BookingRow
from lashdesk.schemas.booking import ActorRole, PaymentMethod, RegularBooking, WalkInBooking
from lashdesk.services import booking_ledger
from lashdesk.services.booking_ledger import Directive, LedgerResult
from lashdesk.services.notification_service import NotificationService
from lashdesk.services.payment_gateway import PaymentGateway, PaymentHandle


logger = get_logger(__name__)

AnyBooking = Union[RegularBooking, WalkInBooking]


@dataclass
class BookingOutcome:
    booking: AnyBooking
    aftercare_sent: Optional[bool] = None
    reschedule_notice_sent: Optional[bool] = None
    is_late_cancellation: Optional[bool] = None
    changed: bool = True


class BookingService:
    """Ledger operations with row locking, persistence and notifications."""

    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService()
        self.metrics = get_metrics_collector()

    # ===== Reads =====

    def _get_row(self, booking_id: str, lock: bool = False) -> BookingRow:
        stmt = select(BookingRow).where(BookingRow.id == booking_id)
        if lock:
            stmt = stmt.with_for_update()
        row = self.db.execute(stmt).scalar_one_or_none()
        if row is None:
            raise NotFoundException("Booking", booking_id)
        return row

    def get(self, booking_id: str) -> AnyBooking:
        return self._get_row(booking_id).to_record()

    def create(self, booking: AnyBooking) -> AnyBooking:
        """Store a new booking (online booking or admin-entered walk-in)."""
        row = BookingRow.from_record(booking)
        self.db.add(row)
        self.db.commit()
        logger.info(
            "Booking created",
            extra={"booking_id": booking.id, "kind": booking.kind, "final_price": booking.final_price},
        )
        return row.to_record()

    # ===== Ledger operations =====

    async def _apply(
        self,
        booking_id: str,
        action: str,
        operation: Callable[[AnyBooking], LedgerResult],
    ) -> BookingOutcome:
        try:
            row = self._get_row(booking_id, lock=True)
            current = row.to_record()
            result = operation(current)
            changed = result.booking is not current
            if changed:
                row.apply_record(result.booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if changed:
            self.metrics.increment_transitions(action)

        outcome = BookingOutcome(
            booking=result.booking,
            is_late_cancellation=result.is_late_cancellation,
            changed=changed,
        )
        sent = await self._dispatch(result)
        if Directive.SEND_AFTERCARE in sent:
            outcome.aftercare_sent = sent[Directive.SEND_AFTERCARE]
        if Directive.SEND_RESCHEDULE_NOTICE in sent:
            outcome.reschedule_notice_sent = sent[Directive.SEND_RESCHEDULE_NOTICE]
        return outcome

    async def _dispatch(self, result: LedgerResult) -> Dict[Directive, bool]:
        sent: Dict[Directive, bool] = {}
        for directive in result.directives:
            sent[directive] = await self.notifier.dispatch(directive, result.booking)
        return sent

    async def record_payment(
        self,
        booking_id: str,
        amount: float,
        method: Union[PaymentMethod, str],
        reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingOutcome:
        method_label = method.value if isinstance(method, PaymentMethod) else str(method)
        try:
            outcome = await self._apply(
                booking_id,
                "payment",
                lambda b: booking_ledger.record_payment(b, amount, method, reference=reference, now=now),
            )
        except Exception:
            self.metrics.increment_payments(method_label, "rejected")
            raise

        self.metrics.increment_payments(method_label, "recorded" if outcome.changed else "duplicate")
        return outcome

    async def request_balance_payment(
        self,
        booking_id: str,
        gateway: PaymentGateway,
        amount: Optional[float] = None,
        payer_ref: Optional[str] = None,
    ) -> PaymentHandle:
        """
        Start a gateway charge for what the client still owes.

        Args:
            booking_id: Booking to charge
            gateway: Gateway to charge through
            amount: Custom amount; defaults to the full amount due (the whole
                final price for an unpaid walk-in)
            payer_ref: Phone or email to charge; defaults to the client's email

        Raises:
            BookingNotActionable: booking is cancelled or completed
            InvalidAmount: nothing is due, or the amount is non-positive or
                above the amount due
            BadRequestException: no payer reference is available
        """
        booking = self.get(booking_id)
        if not booking.is_open:
            raise BookingNotActionable(booking.status.value, "request a payment for")

        due = booking_ledger.max_payment_allowed(booking)
        if round_amount(due, places=2) <= 0:
            raise InvalidAmount("No balance due for this booking", details={"balance": due})

        if amount is None:
            amount = due
        elif not math.isfinite(amount) or amount <= 0:
            raise InvalidAmount("Payment amount must be greater than zero", details={"amount": amount})
        elif round_amount(amount, places=2) > round_amount(due, places=2):
            raise InvalidAmount(
                f"Payment of {format_currency(amount)} exceeds the amount due of {format_currency(due)}",
                details={"amount": amount, "max_allowed": due},
            )

        payer_ref = (payer_ref or booking.client_email or "").strip()
        if not payer_ref:
            raise BadRequestException("A phone number or email is required to start a gateway payment")

        handle = await gateway.initiate(amount, payer_ref, booking_id=booking.id)
        self.metrics.increment_payments(handle.method.value, "initiated")
        logger.info(
            "Balance payment requested",
            extra={
                "booking_id": booking.id,
                "reference": handle.reference,
                "amount": amount,
                "method": handle.method.value,
            },
        )
        return handle

    async def confirm_reference(
        self,
        booking_id: str,
        gateway: PaymentGateway,
        reference: str,
    ) -> BookingOutcome:
        """
        Confirm a charge by its gateway reference (callback or admin check).

        Raises:
            NotFoundException: the gateway has no charge with this reference
            BadRequestException: the charge was started for another booking
        """
        handle = gateway.lookup(reference)
        if handle is None:
            raise NotFoundException("Payment", reference)
        if handle.booking_id is not None and handle.booking_id != booking_id:
            raise BadRequestException(
                "Payment reference belongs to another booking",
                details={"reference": reference},
            )
        return await self.confirm_gateway_payment(booking_id, gateway, handle)

    async def confirm_gateway_payment(
        self,
        booking_id: str,
        gateway: PaymentGateway,
        handle: PaymentHandle,
    ) -> BookingOutcome:
        """
        Verify a gateway charge and record it on the booking.

        The charge reference is stored on the payment, so confirming the
        same charge twice records it once.

        Raises:
            BadRequestException: the gateway reports the charge as not paid
        """
        result = await gateway.verify(handle)
        if not result.succeeded:
            self.metrics.increment_payments(handle.method.value, "failed")
            logger.warning(
                "Gateway payment not confirmed",
                extra={"booking_id": booking_id, "reference": handle.reference, "outcome": result.outcome.value},
            )
            raise BadRequestException(
                result.message or "Payment was not completed",
                details={"reference": handle.reference, "outcome": result.outcome.value},
            )
        return await self.record_payment(
            booking_id,
            result.amount,
            handle.method,
            reference=handle.reference,
        )

    async def add_service(
        self,
        booking_id: str,
        name: str,
        price: float,
        now: Optional[datetime] = None,
    ) -> BookingOutcome:
        return await self._apply(
            booking_id,
            "add_service",
            lambda b: booking_ledger.add_additional_service(b, name, price, now=now),
        )

    async def add_fine(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        amount: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> BookingOutcome:
        return await self._apply(
            booking_id,
            "fine",
            lambda b: booking_ledger.add_fine(b, reason=reason, amount=amount, now=now),
        )

    async def cancel(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        cancelled_by: Union[ActorRole, str] = ActorRole.ADMIN,
        now: Optional[datetime] = None,
    ) -> BookingOutcome:
        return await self._apply(
            booking_id,
            "cancel",
            lambda b: booking_ledger.cancel(b, reason=reason, cancelled_by=cancelled_by, now=now),
        )

    async def reschedule(
        self,
        booking_id: str,
        new_date: str,
        new_time_slot: datetime,
        notify: bool = False,
        rescheduled_by: str = ActorRole.ADMIN.value,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingOutcome:
        return await self._apply(
            booking_id,
            "reschedule",
            lambda b: booking_ledger.reschedule(
                b,
                new_date,
                new_time_slot,
                notify=notify,
                rescheduled_by=rescheduled_by,
                notes=notes,
                now=now,
            ),
        )

    async def complete(self, booking_id: str, now: Optional[datetime] = None) -> BookingOutcome:
        return await self._apply(
            booking_id,
            "complete",
            lambda b: booking_ledger.complete(b, now=now),
        )

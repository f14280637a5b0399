"""
Booking ledger engine.

Computes what a client owes and applies the admin-side operations on a
single booking: recording payments, adding services or a fine, cancelling,
rescheduling and completing.

Every operation takes a booking record and returns a LedgerResult holding a
*new* record plus the side effects the caller should run (aftercare email,
reschedule notice). The input record is never mutated, so a rejected
operation leaves the caller's state untouched.
"""
import enum
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from lashdesk.lib.currency import format_currency, round_amount
from lashdesk.lib.errors import (
    AlreadyFined,
    BadRequestException,
    BookingNotActionable,
    InvalidAmount,
    InvalidSlot,
    LimitExceeded,
)
from lashdesk.lib.logging import get_logger
from lashdesk.lib.pricing_config import get_booking_policy
from lashdesk.schemas.booking import (
    OPEN_STATUSES,
    ActorRole,
    AdditionalService,
    BookingStatus,
    Fine,
    PaymentEntry,
    PaymentMethod,
    RefundStatus,
    RegularBooking,
    RescheduleEntry,
    WalkInBooking,
)


logger = get_logger(__name__)

AnyBooking = Union[RegularBooking, WalkInBooking]

DEFAULT_FINE_REASON = "Failure to follow pre-appointment guidelines (DO's and DON'Ts)"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Directive(str, enum.Enum):
    """Side effects requested by a ledger operation."""
    SEND_AFTERCARE = "send_aftercare"
    SEND_RESCHEDULE_NOTICE = "send_reschedule_notice"


@dataclass(frozen=True)
class LedgerResult:
    booking: AnyBooking
    directives: Tuple[Directive, ...] = ()
    is_late_cancellation: Optional[bool] = None

    def has(self, directive: Directive) -> bool:
        return directive in self.directives


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _require_open(booking: AnyBooking, operation: str) -> None:
    if not booking.is_open:
        logger.warning(
            "Rejected ledger operation on closed booking",
            extra={"booking_id": booking.id, "status": booking.status.value, "operation": operation},
        )
        raise BookingNotActionable(booking.status.value, operation)


def _with_derived_status(booking: AnyBooking) -> AnyBooking:
    """An open booking is paid exactly when the deposit covers the final price."""
    if booking.status not in OPEN_STATUSES:
        return booking
    status = BookingStatus.PAID if booking.deposit >= booking.final_price else BookingStatus.CONFIRMED
    if status == booking.status:
        return booking
    return booking.model_copy(update={"status": status})


def compute_balance(booking: AnyBooking) -> float:
    """
    Amount still owed on the booking.

    A walk-in with nothing paid owes the whole final price (service plus
    walk-in fee); everyone else owes final price minus what they've paid.
    """
    if booking.is_walk_in and booking.deposit == 0:
        return booking.final_price
    return max(booking.final_price - booking.deposit, 0.0)


def max_payment_allowed(booking: AnyBooking) -> float:
    if booking.is_walk_in and booking.deposit == 0:
        return booking.final_price
    return compute_balance(booking)


def record_payment(
    booking: AnyBooking,
    amount: float,
    method: Union[PaymentMethod, str],
    reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LedgerResult:
    """
    Record a cash or gateway payment against the booking.

    Args:
        booking: Booking to pay against; must be confirmed
        amount: Positive amount, at most the outstanding balance
        method: cash, mpesa or paystack
        reference: Gateway request id; a reference already on the booking
            is treated as a replayed callback and changes nothing
        now: Clock override

    Returns:
        LedgerResult; carries SEND_AFTERCARE the first time the booking
        becomes paid in full

    Raises:
        BookingNotActionable: booking is not confirmed
        InvalidAmount: amount is non-positive or above the allowed maximum
    """
    now = _resolve_now(now)
    try:
        method = PaymentMethod(method)
    except ValueError:
        raise BadRequestException(f"Unsupported payment method: {method}")

    if reference and any(p.reference == reference for p in booking.payments):
        logger.info(
            "Payment reference already recorded",
            extra={"booking_id": booking.id, "reference": reference},
        )
        return LedgerResult(booking=booking)

    if booking.status != BookingStatus.CONFIRMED:
        raise BookingNotActionable(booking.status.value, "record a payment on")

    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount(
            "Payment amount must be greater than zero",
            details={"amount": amount},
        )

    max_allowed = max_payment_allowed(booking)
    if round_amount(amount, places=2) > round_amount(max_allowed, places=2):
        raise InvalidAmount(
            f"Payment of {format_currency(amount)} exceeds the amount due of {format_currency(max_allowed)}",
            details={"amount": amount, "max_allowed": max_allowed},
        )
    # An amount equal to the amount due at cent precision settles it exactly.
    if round_amount(max_allowed - amount, places=2) <= 0:
        amount = max_allowed
        new_deposit = booking.final_price
    else:
        new_deposit = booking.deposit + amount

    entry = PaymentEntry(amount=amount, method=method, recorded_at=now, reference=reference)
    update = {
        "deposit": new_deposit,
        "payments": [*booking.payments, entry],
    }

    directives = []
    if new_deposit >= booking.final_price:
        update["status"] = BookingStatus.PAID
        if booking.paid_in_full_at is None:
            update["paid_in_full_at"] = now
            directives.append(Directive.SEND_AFTERCARE)

    updated = booking.model_copy(update=update)

    logger.info(
        "Payment recorded",
        extra={
            "booking_id": booking.id,
            "amount": amount,
            "method": method.value,
            "deposit": new_deposit,
            "status": updated.status.value,
        },
    )
    return LedgerResult(booking=updated, directives=tuple(directives))


def add_additional_service(
    booking: AnyBooking,
    name: str,
    price: float,
    now: Optional[datetime] = None,
) -> LedgerResult:
    """Append an extra service to an open booking (capped by policy, two by default)."""
    _require_open(booking, "add a service to")

    limit = get_booking_policy().max_additional_services
    if len(booking.additional_services) >= limit:
        raise LimitExceeded(
            f"A booking can have at most {limit} additional services",
            details={"limit": limit},
        )
    if not name or not name.strip():
        raise BadRequestException("Service name is required")
    if price is None or not math.isfinite(price) or price < 0:
        raise InvalidAmount("Service price cannot be negative", details={"price": price})

    service = AdditionalService(name=name.strip(), price=price, added_at=_resolve_now(now))
    updated = booking.model_copy(
        update={"additional_services": [*booking.additional_services, service]}
    )
    updated = _with_derived_status(updated)

    logger.info(
        "Additional service added",
        extra={"booking_id": booking.id, "service": service.name, "final_price": updated.final_price},
    )
    return LedgerResult(booking=updated)


def add_fine(
    booking: AnyBooking,
    reason: Optional[str] = None,
    amount: Optional[float] = None,
    now: Optional[datetime] = None,
) -> LedgerResult:
    """
    Fine the client once for ignoring the pre-appointment guidelines.

    A booking carries at most one fine; it's never edited afterwards.
    """
    _require_open(booking, "fine")

    if booking.fine is not None:
        raise AlreadyFined("Fine has already been added to this booking")

    if amount is None:
        amount = get_booking_policy().fine_amount
    if not math.isfinite(amount) or amount < 0:
        raise InvalidAmount("Fine amount cannot be negative", details={"amount": amount})

    fine = Fine(
        amount=amount,
        reason=(reason or "").strip() or DEFAULT_FINE_REASON,
        added_at=_resolve_now(now),
    )
    updated = _with_derived_status(booking.model_copy(update={"fine": fine}))

    logger.info(
        "Fine added",
        extra={"booking_id": booking.id, "amount": amount, "final_price": updated.final_price},
    )
    return LedgerResult(booking=updated)


def refund_status_for(booking: AnyBooking, is_late: bool) -> RefundStatus:
    """
    Audit-only refund classification; no money moves because of it.

    Walk-ins never paid a booking deposit, so there is nothing to refund.
    """
    if booking.is_walk_in:
        return RefundStatus.NOT_APPLICABLE
    if booking.deposit <= 0:
        return RefundStatus.NOT_REQUIRED
    return RefundStatus.RETAINED if is_late else RefundStatus.PENDING


def cancel(
    booking: AnyBooking,
    reason: Optional[str] = None,
    cancelled_by: Union[ActorRole, str] = ActorRole.ADMIN,
    window_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> LedgerResult:
    """
    Cancel a confirmed or paid booking.

    A cancellation less than ``window_hours`` before the appointment is late.
    """
    _require_open(booking, "cancel")
    now = _resolve_now(now)

    window = window_hours
    if window is None:
        window = booking.cancellation_window_hours
    if window is None:
        window = get_booking_policy().cancellation_window_hours
    hours_until = (booking.time_slot - now).total_seconds() / 3600
    is_late = hours_until < window

    updated = booking.model_copy(update={
        "status": BookingStatus.CANCELLED,
        "cancelled_at": now,
        "cancelled_by": ActorRole(cancelled_by),
        "cancellation_reason": reason or None,
        "refund_status": refund_status_for(booking, is_late),
        "refund_amount": 0.0,
    })

    logger.info(
        "Booking cancelled",
        extra={
            "booking_id": booking.id,
            "hours_until_appointment": round(hours_until, 2),
            "is_late": is_late,
            "refund_status": updated.refund_status.value,
        },
    )
    return LedgerResult(booking=updated, is_late_cancellation=is_late)


def _format_slot(value: datetime) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def reschedule(
    booking: AnyBooking,
    new_date: str,
    new_time_slot: datetime,
    notify: bool = False,
    rescheduled_by: str = ActorRole.ADMIN.value,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LedgerResult:
    """
    Move an open booking to a new future slot.

    The previous slot is appended to the reschedule history; the deposit
    carries over untouched.

    Raises:
        InvalidSlot: bad date, same slot as today, or a slot in the past
    """
    _require_open(booking, "reschedule")
    now = _resolve_now(now)

    if not new_date or not _DATE_RE.match(new_date):
        raise InvalidSlot("Invalid date format.", details={"date": new_date})
    new_time_slot = _resolve_now(new_time_slot)
    if new_time_slot == booking.time_slot:
        raise InvalidSlot("The new slot matches the current booking time.")
    if new_time_slot <= now:
        raise InvalidSlot("Cannot reschedule to a past time.")

    default_note = (
        f"Rescheduled from {booking.date} {_format_slot(booking.time_slot)} "
        f"to {new_date} {_format_slot(new_time_slot)} by {rescheduled_by}."
    )
    entry = RescheduleEntry(
        from_date=booking.date,
        from_time_slot=booking.time_slot,
        to_date=new_date,
        to_time_slot=new_time_slot,
        rescheduled_at=now,
        rescheduled_by=rescheduled_by,
        notes=notes or default_note,
    )

    window = booking.cancellation_window_hours
    if window is None:
        window = get_booking_policy().cancellation_window_hours
    updated = booking.model_copy(update={
        "date": new_date,
        "time_slot": new_time_slot,
        "rescheduled_at": now,
        "rescheduled_by": rescheduled_by,
        "reschedule_history": [*booking.reschedule_history, entry],
        "cancellation_window_hours": window,
        "cancellation_cutoff_at": new_time_slot - timedelta(hours=window),
    })

    logger.info(
        "Booking rescheduled",
        extra={
            "booking_id": booking.id,
            "from_slot": entry.from_time_slot.isoformat(),
            "to_slot": entry.to_time_slot.isoformat(),
            "notify": notify,
        },
    )
    directives = (Directive.SEND_RESCHEDULE_NOTICE,) if notify else ()
    return LedgerResult(booking=updated, directives=directives)


def complete(booking: AnyBooking, now: Optional[datetime] = None) -> LedgerResult:
    """Close out a booking after the appointment."""
    _require_open(booking, "complete")
    updated = booking.model_copy(update={
        "status": BookingStatus.COMPLETED,
        "completed_at": _resolve_now(now),
    })
    logger.info("Booking completed", extra={"booking_id": booking.id, "balance": compute_balance(updated)})
    return LedgerResult(booking=updated)

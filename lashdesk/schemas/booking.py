"""
Booking records consumed and produced by the booking ledger.

A booking is either a RegularBooking (deposit paid up front, balance after
the appointment) or a WalkInBooking (nothing up front, the full price plus
walk-in fee due after the appointment). ``final_price`` is always derived
from the other financial fields, never stored independently.
"""
import enum
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    computed_field,
    field_validator,
)

from lashdesk.lib.currency import round_amount


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, enum.Enum):
    """confirmed → paid → completed, or cancelled from confirmed/paid."""
    CONFIRMED = "confirmed"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.PAID})


class RefundStatus(str, enum.Enum):
    NOT_REQUIRED = "not_required"
    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"
    REFUNDED = "refunded"
    RETAINED = "retained"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    MPESA = "mpesa"
    PAYSTACK = "paystack"


class ActorRole(str, enum.Enum):
    ADMIN = "admin"
    CLIENT = "client"


class AdditionalService(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    added_at: datetime = Field(default_factory=utcnow)


class Fine(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float = Field(ge=0)
    reason: str
    added_at: datetime = Field(default_factory=utcnow)


class PaymentEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float = Field(gt=0)
    method: PaymentMethod
    recorded_at: datetime = Field(default_factory=utcnow)
    reference: Optional[str] = Field(
        default=None,
        description="Gateway request id (e.g. M-Pesa CheckoutRequestID)",
    )


class RescheduleEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_date: str
    from_time_slot: datetime
    to_date: str
    to_time_slot: datetime
    rescheduled_at: datetime
    rescheduled_by: str
    notes: Optional[str] = None


class BookingBase(BaseModel):
    """Fields shared by regular and walk-in bookings."""

    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    id: str
    client_name: str = ""
    client_email: Optional[str] = None
    service: str = ""
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    time_slot: datetime

    original_price: float = Field(ge=0)
    discount: float = Field(default=0, ge=0, le=100, description="Percent off original_price")
    deposit: float = Field(default=0, ge=0)

    additional_services: List[AdditionalService] = Field(default_factory=list)
    fine: Optional[Fine] = None
    payments: List[PaymentEntry] = Field(default_factory=list)

    status: BookingStatus = BookingStatus.CONFIRMED
    paid_in_full_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    refund_status: Optional[RefundStatus] = None
    refund_amount: Optional[float] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[ActorRole] = None
    cancellation_reason: Optional[str] = None

    rescheduled_at: Optional[datetime] = None
    rescheduled_by: Optional[str] = None
    reschedule_history: List[RescheduleEntry] = Field(default_factory=list)
    cancellation_window_hours: Optional[int] = None
    cancellation_cutoff_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)

    @field_validator(
        "time_slot",
        "paid_in_full_at",
        "completed_at",
        "cancelled_at",
        "rescheduled_at",
        "cancellation_cutoff_at",
        "created_at",
    )
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive values are taken as UTC; aware ones are converted to it."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def is_walk_in(self) -> bool:
        return False

    @property
    def surcharge(self) -> float:
        return 0.0

    @property
    def discount_amount(self) -> float:
        """Percent discount in whole KES, rounded half-up."""
        return round_amount(self.original_price * self.discount / 100)

    @computed_field  # type: ignore[misc]
    @property
    def final_price(self) -> float:
        total = (
            self.original_price
            - self.discount_amount
            + sum(s.price for s in self.additional_services)
            + (self.fine.amount if self.fine else 0)
            + self.surcharge
        )
        return max(total, 0.0)

    @computed_field  # type: ignore[misc]
    @property
    def balance(self) -> float:
        return max(self.final_price - self.deposit, 0.0)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class RegularBooking(BookingBase):
    kind: Literal["regular"] = "regular"


class WalkInBooking(BookingBase):
    """Client served without an online booking; pays everything after the appointment."""

    kind: Literal["walk_in"] = "walk_in"
    walk_in_fee: float = Field(default=0, ge=0)

    @property
    def is_walk_in(self) -> bool:
        return True

    @property
    def surcharge(self) -> float:
        return self.walk_in_fee


Booking = Annotated[Union[RegularBooking, WalkInBooking], Field(discriminator="kind")]

booking_adapter: TypeAdapter[Booking] = TypeAdapter(Booking)


def parse_booking(data: dict) -> Union[RegularBooking, WalkInBooking]:
    """Build a booking record from a plain dict; bookings without a ``kind`` are regular."""
    payload = dict(data)
    if "kind" not in payload:
        payload["kind"] = "walk_in" if payload.get("is_walk_in") else "regular"
    return booking_adapter.validate_python(payload)

"""
Booking model - salon appointments and their ledger.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from lashdesk.lib.db import Base
from lashdesk.schemas.booking import (
    BookingStatus,
    RefundStatus,
    RegularBooking,
    WalkInBooking,
    parse_booking,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingRow(Base):
    """
    Booking entity.
    State machine: confirmed → paid → completed, or cancelled from confirmed/paid.
    """
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="regular")

    # Client and appointment
    client_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    client_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    service: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    time_slot: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Money (KES)
    original_price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    deposit: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    walk_in_fee: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True)
    final_price: Mapped[float] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Denormalized copy of the derived final price, for reporting",
    )

    additional_services: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    fine: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    payments: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Lifecycle
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True,
    )
    paid_in_full_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cancellation (refund fields are audit only)
    refund_status: Mapped[Optional[RefundStatus]] = mapped_column(
        SQLEnum(RefundStatus, name="refund_status"),
        nullable=True,
    )
    refund_amount: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Rescheduling
    rescheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rescheduled_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reschedule_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    cancellation_window_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancellation_cutoff_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        CheckConstraint("deposit >= 0", name="booking_deposit_non_negative"),
        CheckConstraint("final_price >= 0", name="booking_final_price_non_negative"),
    )

    _RECORD_FIELDS = (
        "id", "kind", "client_name", "client_email", "service", "date", "time_slot",
        "status", "paid_in_full_at", "completed_at", "refund_status", "cancelled_at",
        "cancelled_by", "cancellation_reason", "rescheduled_at", "rescheduled_by",
        "cancellation_window_hours", "cancellation_cutoff_at", "created_at",
        "additional_services", "fine", "payments", "reschedule_history",
    )
    _MONEY_FIELDS = ("original_price", "discount", "deposit", "refund_amount")
    # Stored as their JSON form
    _PLAIN_FIELDS = (
        "additional_services", "fine", "payments", "reschedule_history", "cancelled_by",
    )

    def to_record(self) -> Union[RegularBooking, WalkInBooking]:
        """Load the row as a ledger record."""
        data: Dict[str, Any] = {name: getattr(self, name) for name in self._RECORD_FIELDS}
        for name in self._MONEY_FIELDS:
            value = getattr(self, name)
            data[name] = float(value) if value is not None else None
        if self.kind == "walk_in":
            data["walk_in_fee"] = float(self.walk_in_fee or 0)
        return parse_booking(data)

    def apply_record(self, record: Union[RegularBooking, WalkInBooking]) -> None:
        """Write a ledger record back onto the row."""
        data = record.model_dump(mode="json")
        for name in self._RECORD_FIELDS:
            if name in self._PLAIN_FIELDS:
                setattr(self, name, data[name])
            else:
                setattr(self, name, getattr(record, name))
        for name in self._MONEY_FIELDS:
            setattr(self, name, getattr(record, name))
        self.walk_in_fee = getattr(record, "walk_in_fee", None)
        self.final_price = record.final_price

    @classmethod
    def from_record(cls, record: Union[RegularBooking, WalkInBooking]) -> "BookingRow":
        row = cls()
        row.apply_record(record)
        return row

    def __repr__(self) -> str:
        return f"<BookingRow(id={self.id}, status={self.status}, client_email={self.client_email})>"

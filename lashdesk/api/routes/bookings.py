"""
Admin booking routes - the booking ledger over HTTP.

Provides:
- POST /admin/bookings: store a booking (regular or walk-in)
- GET /admin/bookings/{id}: booking with balance due
- POST /admin/bookings/{id}/payments|services|fine|cancel|reschedule|complete
- POST /admin/bookings/{id}/payments/request|confirm: gateway charge for the balance
"""
from datetime import datetime
from typing import Literal, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, model_validator

from lashdesk.api.dependencies import get_booking_service
from lashdesk.lib.currency import base_currency
from lashdesk.schemas.booking import ActorRole, Booking, PaymentMethod, parse_booking
from lashdesk.services.booking_ledger import compute_balance, max_payment_allowed
from lashdesk.services.booking_service import BookingOutcome, BookingService
from lashdesk.services.payment_gateway import get_gateway


router = APIRouter(prefix="/admin/bookings", tags=["admin", "bookings"])


# Request models
class CreateBookingRequest(BaseModel):
    id: Optional[str] = None
    kind: Literal["regular", "walk_in"] = "regular"
    client_name: str
    client_email: Optional[str] = None
    service: str
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    time_slot: datetime
    original_price: float = Field(ge=0)
    discount: float = Field(default=0, ge=0, le=100)
    deposit: float = Field(default=0, ge=0)
    walk_in_fee: float = Field(default=0, ge=0, description="Walk-ins only")

    @model_validator(mode="after")
    def _walk_in_has_no_deposit(self) -> "CreateBookingRequest":
        if self.kind == "walk_in" and self.deposit > 0:
            raise ValueError("Walk-in bookings are created with no deposit")
        return self


class PaymentRequest(BaseModel):
    amount: float
    method: PaymentMethod
    reference: Optional[str] = Field(default=None, description="Gateway request id, used to drop replays")


class BalancePaymentRequest(BaseModel):
    method: PaymentMethod = PaymentMethod.PAYSTACK
    amount: Optional[float] = Field(default=None, description="Defaults to the full amount due")
    payer_ref: Optional[str] = Field(default=None, description="Phone (M-Pesa) or email (Paystack); defaults to the client email")


class ConfirmPaymentRequest(BaseModel):
    method: PaymentMethod
    reference: str = Field(min_length=1)


class AdditionalServiceRequest(BaseModel):
    name: str
    price: float


class FineRequest(BaseModel):
    reason: Optional[str] = None
    amount: Optional[float] = Field(default=None, description="Defaults to the configured fine")


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    cancelled_by: ActorRole = ActorRole.ADMIN


class RescheduleRequest(BaseModel):
    new_date: str
    new_time_slot: datetime
    notify: bool = False
    notes: Optional[str] = None
    rescheduled_by: str = ActorRole.ADMIN.value


# Response models
class BookingResponse(BaseModel):
    booking: Booking
    balance: float
    max_payment_allowed: float


class BalancePaymentResponse(BaseModel):
    booking_id: str
    reference: str
    amount: float
    method: PaymentMethod
    payer_ref: str
    currency: str


class LedgerResponse(BookingResponse):
    aftercare_sent: Optional[bool] = None
    reschedule_notice_sent: Optional[bool] = None
    is_late_cancellation: Optional[bool] = None
    changed: bool = True


def _booking_response(booking) -> BookingResponse:
    return BookingResponse(
        booking=booking,
        balance=compute_balance(booking),
        max_payment_allowed=max_payment_allowed(booking),
    )


def _ledger_response(outcome: BookingOutcome) -> LedgerResponse:
    return LedgerResponse(
        booking=outcome.booking,
        balance=compute_balance(outcome.booking),
        max_payment_allowed=max_payment_allowed(outcome.booking),
        aftercare_sent=outcome.aftercare_sent,
        reschedule_notice_sent=outcome.reschedule_notice_sent,
        is_late_cancellation=outcome.is_late_cancellation,
        changed=outcome.changed,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    payload = request.model_dump()
    payload["id"] = request.id or str(uuid4())
    if request.kind != "walk_in":
        payload.pop("walk_in_fee")
    booking = service.create(parse_booking(payload))
    return _booking_response(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return _booking_response(service.get(booking_id))


@router.post("/{booking_id}/payments", response_model=LedgerResponse)
async def record_payment(
    booking_id: str,
    request: PaymentRequest,
    service: BookingService = Depends(get_booking_service),
) -> LedgerResponse:
    """
    Record a cash, M-Pesa or Paystack payment.

    A reference that is already on the booking returns the booking unchanged
    with ``changed=false``.
    """
    outcome = await service.record_payment(booking_id, request.amount, request.method, reference=request.reference)
    return _ledger_response(outcome)


@router.post(
    "/{booking_id}/payments/request",
    response_model=BalancePaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_balance_payment(
    booking_id: str,
    request: BalancePaymentRequest,
    service: BookingService = Depends(get_booking_service),
) -> BalancePaymentResponse:
    """
    Start an M-Pesa or Paystack charge for the balance.

    Walk-ins with nothing paid are charged the whole final price.
    """
    gateway = get_gateway(request.method)
    handle = await service.request_balance_payment(
        booking_id, gateway, amount=request.amount, payer_ref=request.payer_ref,
    )
    return BalancePaymentResponse(
        booking_id=booking_id,
        reference=handle.reference,
        amount=handle.amount,
        method=handle.method,
        payer_ref=handle.payer_ref,
        currency=base_currency().value,
    )


@router.post("/{booking_id}/payments/confirm", response_model=LedgerResponse)
async def confirm_payment(
    booking_id: str,
    request: ConfirmPaymentRequest,
    service: BookingService = Depends(get_booking_service),
) -> LedgerResponse:
    """Verify a gateway charge and record it; confirming twice records it once."""
    outcome = await service.confirm_reference(booking_id, get_gateway(request.method), request.reference)
    return _ledger_response(outcome)


@router.post("/{booking_id}/services", response_model=LedgerResponse)
async def add_service(
    booking_id: str,
    request: AdditionalServiceRequest,
    service: BookingService = Depends(get_booking_service),
) -> LedgerResponse:
    outcome = await service.add_service(booking_id, request.name, request.price)
    return _ledger_response(outcome)


@router.post("/{booking_id}/fine", response_model=LedgerResponse)
async def add_fine(
    booking_id: str,
    request: FineRequest,
    service: BookingService = Depends(get_booking_service),
) -> LedgerResponse:
    outcome = await service.add_fine(booking_id, reason=request.reason, amount=request.amount)
    return _ledger_response(outcome)


@router.post("/{booking_id}/cancel", response_model=LedgerResponse)
async def cancel_booking(
    booking_id: str,
    request: CancelRequest,
    service: BookingService = Depends(get_booking_service),
) -> LedgerResponse:
    outcome = await service.cancel(booking_id, reason=request.reason, cancelled_by=request.cancelled_by)
    return _ledger_response(outcome)


@router.post("/{booking_id}/reschedule", response_model=LedgerResponse)
async def reschedule_booking(
    booking_id: str,
    request: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
) -> LedgerResponse:
    outcome = await service.reschedule(
        booking_id,
        request.new_date,
        request.new_time_slot,
        notify=request.notify,
        rescheduled_by=request.rescheduled_by,
        notes=request.notes,
    )
    return _ledger_response(outcome)


@router.post("/{booking_id}/complete", response_model=LedgerResponse)
async def complete_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> LedgerResponse:
    outcome = await service.complete(booking_id)
    return _ledger_response(outcome)

"""
Unit tests for BookingService against an in-memory database.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from lashdesk.lib.errors import (
    BadRequestException,
    BookingNotActionable,
    InvalidAmount,
    LimitExceeded,
    NotFoundException,
)
from lashdesk.lib.metrics import get_metrics_collector
from lashdesk.schemas.booking import BookingStatus, PaymentMethod, RegularBooking, WalkInBooking
from lashdesk.services.booking_service import BookingService
from lashdesk.services.payment_gateway import ConsolePaymentGateway


NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
SLOT = datetime(2025, 3, 5, 10, 0, tzinfo=timezone.utc)


def make_booking(**overrides) -> RegularBooking:
    data = dict(
        id="bk-1",
        client_name="Amina",
        client_email="amina@example.com",
        service="Classic Full Set",
        date="2025-03-05",
        time_slot=SLOT,
        original_price=15000,
        deposit=5000,
    )
    data.update(overrides)
    return RegularBooking(**data)


@pytest.fixture
def service(db_session, notifier):
    service = BookingService(db_session, notifier)
    service.create(make_booking())
    return service


def payments_count(method: str, status: str) -> int:
    return get_metrics_collector().get_counter_value("booking_payments_total", {"method": method, "status": status})


@pytest.mark.unit
def test_create_and_get_round_trip(service):
    booking = service.get("bk-1")

    assert booking.client_name == "Amina"
    assert booking.time_slot == SLOT
    assert booking.deposit == 5000
    assert booking.final_price == 15000
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.unit
def test_walk_in_round_trip(db_session, notifier):
    service = BookingService(db_session, notifier)
    service.create(WalkInBooking(
        id="walk-1", date="2025-03-01", time_slot=SLOT, original_price=7000, walk_in_fee=1000,
    ))

    booking = service.get("walk-1")

    assert booking.is_walk_in
    assert booking.walk_in_fee == 1000
    assert booking.final_price == 8000


@pytest.mark.unit
def test_get_missing_booking(service):
    with pytest.raises(NotFoundException):
        service.get("nope")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_full_payment_persists_and_sends_aftercare(service, email_provider):
    outcome = await service.record_payment("bk-1", 10000, PaymentMethod.CASH, now=NOW)

    assert outcome.changed is True
    assert outcome.aftercare_sent is True
    assert outcome.booking.status == BookingStatus.PAID

    stored = service.get("bk-1")
    assert stored.status == BookingStatus.PAID
    assert stored.deposit == 15000
    assert stored.paid_in_full_at == NOW
    assert stored.payments[0].method == PaymentMethod.CASH
    assert len(email_provider.sent) == 1
    assert payments_count("cash", "recorded") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_partial_payment_sends_nothing(service, email_provider):
    outcome = await service.record_payment("bk-1", 4000, "mpesa", reference="ws_CO_1")

    assert outcome.aftercare_sent is None
    assert outcome.booking.status == BookingStatus.CONFIRMED
    assert email_provider.sent == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replayed_reference_is_duplicate(service):
    await service.record_payment("bk-1", 4000, "mpesa", reference="ws_CO_1")
    outcome = await service.record_payment("bk-1", 4000, "mpesa", reference="ws_CO_1")

    assert outcome.changed is False
    assert service.get("bk-1").deposit == 9000
    assert payments_count("mpesa", "duplicate") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rejected_payment_leaves_booking_unchanged(service):
    with pytest.raises(InvalidAmount):
        await service.record_payment("bk-1", 20000, "cash")

    assert service.get("bk-1").deposit == 5000
    assert payments_count("cash", "rejected") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_notification_keeps_payment(service, email_provider):
    email_provider.send = AsyncMock(side_effect=ConnectionError("smtp down"))

    outcome = await service.record_payment("bk-1", 10000, "cash")

    assert outcome.aftercare_sent is False
    assert service.get("bk-1").status == BookingStatus.PAID


@pytest.mark.unit
@pytest.mark.asyncio
async def test_service_limit_enforced(service):
    await service.add_service("bk-1", "Lash bath", 1000)
    await service.add_service("bk-1", "Bottom lashes", 1500)

    with pytest.raises(LimitExceeded):
        await service.add_service("bk-1", "Tint", 800)

    stored = service.get("bk-1")
    assert [s.name for s in stored.additional_services] == ["Lash bath", "Bottom lashes"]
    assert stored.final_price == 17500


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_records_refund_audit(service):
    outcome = await service.cancel("bk-1", reason="Travelling", now=NOW)

    assert outcome.is_late_cancellation is False
    stored = service.get("bk-1")
    assert stored.status == BookingStatus.CANCELLED
    assert stored.refund_status.value == "pending"
    assert stored.cancellation_reason == "Travelling"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reschedule_with_notice(service, email_provider):
    new_slot = datetime(2025, 3, 7, 14, 0, tzinfo=timezone.utc)

    outcome = await service.reschedule("bk-1", "2025-03-07", new_slot, notify=True, now=NOW)

    assert outcome.reschedule_notice_sent is True
    stored = service.get("bk-1")
    assert stored.time_slot == new_slot
    assert len(stored.reschedule_history) == 1
    assert email_provider.sent[0]["subject"] == "Your appointment has been rescheduled"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_complete_counts_transition(service):
    await service.complete("bk-1", now=NOW)

    assert service.get("bk-1").status == BookingStatus.COMPLETED
    metrics = get_metrics_collector()
    assert metrics.get_counter_value("booking_transitions_total", {"action": "complete"}) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_gateway_payment_records_once(service):
    gateway = ConsolePaymentGateway()
    handle = await gateway.initiate(3000, "+254700000001")

    first = await service.confirm_gateway_payment("bk-1", gateway, handle)
    second = await service.confirm_gateway_payment("bk-1", gateway, handle)

    assert first.changed is True
    assert second.changed is False
    stored = service.get("bk-1")
    assert stored.deposit == 8000
    assert stored.payments[0].reference == handle.reference


@pytest.mark.unit
@pytest.mark.asyncio
async def test_declined_gateway_payment_raises(service):
    gateway = ConsolePaymentGateway(failing_payers={"+254700000002"})
    handle = await gateway.initiate(3000, "+254700000002")

    with pytest.raises(BadRequestException):
        await service.confirm_gateway_payment("bk-1", gateway, handle)

    assert service.get("bk-1").deposit == 5000
    assert payments_count("mpesa", "failed") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_balance_request_defaults_to_amount_due(service):
    gateway = ConsolePaymentGateway(method=PaymentMethod.PAYSTACK)

    handle = await service.request_balance_payment("bk-1", gateway)

    assert handle.amount == 10000
    assert handle.payer_ref == "amina@example.com"
    assert handle.booking_id == "bk-1"
    assert payments_count("paystack", "initiated") == 1

    outcome = await service.confirm_reference("bk-1", gateway, handle.reference)

    assert outcome.booking.status == BookingStatus.PAID
    assert outcome.aftercare_sent is True
    assert service.get("bk-1").payments[0].reference == handle.reference


@pytest.mark.unit
@pytest.mark.asyncio
async def test_balance_request_for_walk_in_charges_full_price(db_session, notifier):
    service = BookingService(db_session, notifier)
    service.create(WalkInBooking(
        id="walk-1", date="2025-03-01", time_slot=SLOT, original_price=7000, walk_in_fee=1000,
    ))

    handle = await service.request_balance_payment("walk-1", ConsolePaymentGateway(), payer_ref="+254700000001")

    assert handle.amount == 8000
    assert handle.payer_ref == "+254700000001"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_balance_request_with_custom_amount(service):
    handle = await service.request_balance_payment("bk-1", ConsolePaymentGateway(), amount=3000)

    assert handle.amount == 3000


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -50, 10001])
async def test_balance_request_rejects_bad_amount(service, amount):
    with pytest.raises(InvalidAmount):
        await service.request_balance_payment("bk-1", ConsolePaymentGateway(), amount=amount)

    assert payments_count("mpesa", "initiated") == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_balance_request_with_nothing_due(service):
    await service.record_payment("bk-1", 10000, "cash")

    with pytest.raises(InvalidAmount) as exc_info:
        await service.request_balance_payment("bk-1", ConsolePaymentGateway())

    assert exc_info.value.details["balance"] == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_balance_request_on_cancelled_booking(service):
    await service.cancel("bk-1", now=NOW)

    with pytest.raises(BookingNotActionable):
        await service.request_balance_payment("bk-1", ConsolePaymentGateway())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_balance_request_needs_payer(db_session, notifier):
    service = BookingService(db_session, notifier)
    service.create(make_booking(id="bk-2", client_email=None))

    with pytest.raises(BadRequestException):
        await service.request_balance_payment("bk-2", ConsolePaymentGateway())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_unknown_reference(service):
    with pytest.raises(NotFoundException):
        await service.confirm_reference("bk-1", ConsolePaymentGateway(), "ws_CO_missing")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_reference_for_other_booking(service):
    service.create(make_booking(id="bk-2"))
    gateway = ConsolePaymentGateway()
    handle = await service.request_balance_payment("bk-2", gateway)

    with pytest.raises(BadRequestException):
        await service.confirm_reference("bk-1", gateway, handle.reference)

    assert service.get("bk-1").deposit == 5000

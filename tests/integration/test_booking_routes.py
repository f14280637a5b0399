"""
Integration tests for the admin booking routes.
"""
from datetime import timedelta

import pytest

from lashdesk.schemas.booking import PaymentMethod
from lashdesk.services.payment_gateway import ConsolePaymentGateway, set_gateway


def create_booking(client, slot, **overrides):
    payload = {
        "id": "bk-1",
        "client_name": "Amina",
        "client_email": "amina@example.com",
        "service": "Classic Full Set",
        "date": slot.date().isoformat(),
        "time_slot": slot.isoformat(),
        "original_price": 15000,
        "deposit": 5000,
    }
    payload.update(overrides)
    response = client.post("/admin/bookings", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.integration
def test_create_and_get_booking(client, future_slot):
    created = create_booking(client, future_slot)

    assert created["booking"]["status"] == "confirmed"
    assert created["booking"]["final_price"] == 15000
    assert created["balance"] == 10000
    assert created["max_payment_allowed"] == 10000

    response = client.get("/admin/bookings/bk-1")
    assert response.status_code == 200
    assert response.json()["booking"]["client_name"] == "Amina"


@pytest.mark.integration
def test_create_walk_in(client, future_slot):
    created = create_booking(
        client, future_slot, id="walk-1", kind="walk_in", original_price=7000, walk_in_fee=1000, deposit=0,
    )

    assert created["booking"]["kind"] == "walk_in"
    assert created["booking"]["final_price"] == 8000
    assert created["max_payment_allowed"] == 8000


@pytest.mark.integration
def test_walk_in_with_deposit_rejected(client, future_slot):
    response = client.post("/admin/bookings", json={
        "kind": "walk_in",
        "client_name": "Wanjiru",
        "service": "Hybrid Refill",
        "date": future_slot.date().isoformat(),
        "time_slot": future_slot.isoformat(),
        "original_price": 7000,
        "deposit": 2000,
    })

    assert response.status_code == 422
    assert "no deposit" in response.json()["details"]["errors"][0]["msg"]


@pytest.mark.integration
def test_unknown_booking_is_404(client):
    response = client.get("/admin/bookings/nope")

    assert response.status_code == 404
    assert response.json()["error"] == "Booking with id 'nope' not found"


@pytest.mark.integration
def test_payment_to_paid_sends_aftercare(client, future_slot, email_provider):
    create_booking(client, future_slot)

    response = client.post("/admin/bookings/bk-1/payments", json={"amount": 10000, "method": "mpesa"})

    assert response.status_code == 200
    data = response.json()
    assert data["booking"]["status"] == "paid"
    assert data["balance"] == 0
    assert data["aftercare_sent"] is True
    assert email_provider.sent[0]["to"] == "amina@example.com"


@pytest.mark.integration
def test_overpayment_rejected_with_kind(client, future_slot):
    create_booking(client, future_slot)

    response = client.post("/admin/bookings/bk-1/payments", json={"amount": 12000, "method": "cash"})

    assert response.status_code == 422
    data = response.json()
    assert data["kind"] == "InvalidAmount"
    assert data["details"]["max_allowed"] == 10000


@pytest.mark.integration
def test_replayed_payment_reference(client, future_slot):
    create_booking(client, future_slot)
    body = {"amount": 2000, "method": "paystack", "reference": "ref-1"}

    client.post("/admin/bookings/bk-1/payments", json=body)
    response = client.post("/admin/bookings/bk-1/payments", json=body)

    assert response.json()["changed"] is False
    assert response.json()["booking"]["deposit"] == 7000


@pytest.mark.integration
def test_unsupported_payment_method(client, future_slot):
    create_booking(client, future_slot)

    response = client.post("/admin/bookings/bk-1/payments", json={"amount": 100, "method": "cheque"})

    assert response.status_code == 422


@pytest.mark.integration
def test_additional_service_limit(client, future_slot):
    create_booking(client, future_slot)

    for name in ("Lash bath", "Bottom lashes"):
        response = client.post("/admin/bookings/bk-1/services", json={"name": name, "price": 1000})
        assert response.status_code == 200

    response = client.post("/admin/bookings/bk-1/services", json={"name": "Tint", "price": 800})

    assert response.status_code == 409
    assert response.json()["kind"] == "LimitExceeded"
    assert client.get("/admin/bookings/bk-1").json()["booking"]["final_price"] == 17000


@pytest.mark.integration
def test_fine_only_once(client, future_slot):
    create_booking(client, future_slot)

    first = client.post("/admin/bookings/bk-1/fine", json={})
    second = client.post("/admin/bookings/bk-1/fine", json={"reason": "Again"})

    assert first.status_code == 200
    assert first.json()["booking"]["fine"]["amount"] == 500
    assert first.json()["balance"] == 10500
    assert second.status_code == 409
    assert second.json()["kind"] == "AlreadyFined"


@pytest.mark.integration
def test_cancel_early_then_again(client, future_slot):
    create_booking(client, future_slot)

    response = client.post("/admin/bookings/bk-1/cancel", json={"reason": "Travelling", "cancelled_by": "client"})

    data = response.json()
    assert data["is_late_cancellation"] is False
    assert data["booking"]["status"] == "cancelled"
    assert data["booking"]["refund_status"] == "pending"
    assert data["booking"]["cancelled_by"] == "client"

    again = client.post("/admin/bookings/bk-1/cancel", json={})
    assert again.status_code == 403
    assert again.json()["kind"] == "Unauthorized"


@pytest.mark.integration
def test_reschedule_with_notice(client, future_slot, email_provider):
    create_booking(client, future_slot)
    new_slot = future_slot + timedelta(days=1)

    response = client.post(
        "/admin/bookings/bk-1/reschedule",
        json={"new_date": new_slot.date().isoformat(), "new_time_slot": new_slot.isoformat(), "notify": True},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["reschedule_notice_sent"] is True
    assert data["booking"]["date"] == new_slot.date().isoformat()
    assert len(data["booking"]["reschedule_history"]) == 1
    assert email_provider.sent[0]["subject"] == "Your appointment has been rescheduled"


@pytest.mark.integration
def test_reschedule_to_past_rejected(client, future_slot):
    create_booking(client, future_slot)
    past = future_slot - timedelta(days=10)

    response = client.post(
        "/admin/bookings/bk-1/reschedule",
        json={"new_date": past.date().isoformat(), "new_time_slot": past.isoformat()},
    )

    assert response.status_code == 422
    assert response.json()["kind"] == "InvalidSlot"


@pytest.mark.integration
def test_complete_booking(client, future_slot):
    create_booking(client, future_slot)

    response = client.post("/admin/bookings/bk-1/complete")

    assert response.json()["booking"]["status"] == "completed"
    blocked = client.post("/admin/bookings/bk-1/payments", json={"amount": 100, "method": "cash"})
    assert blocked.status_code == 403


@pytest.mark.integration
def test_balance_payment_request_then_confirm(client, future_slot, email_provider):
    create_booking(client, future_slot)

    requested = client.post("/admin/bookings/bk-1/payments/request", json={"method": "paystack"})

    assert requested.status_code == 201
    charge = requested.json()
    assert charge["amount"] == 10000
    assert charge["payer_ref"] == "amina@example.com"
    assert charge["currency"] == "KES"

    body = {"method": "paystack", "reference": charge["reference"]}
    confirmed = client.post("/admin/bookings/bk-1/payments/confirm", json=body)
    replayed = client.post("/admin/bookings/bk-1/payments/confirm", json=body)

    assert confirmed.status_code == 200
    assert confirmed.json()["booking"]["status"] == "paid"
    assert confirmed.json()["aftercare_sent"] is True
    assert replayed.json()["changed"] is False
    assert len(email_provider.sent) == 1


@pytest.mark.integration
def test_walk_in_balance_request_is_full_price(client, future_slot):
    create_booking(
        client, future_slot, id="walk-1", kind="walk_in", original_price=7000, walk_in_fee=1000, deposit=0,
    )

    response = client.post(
        "/admin/bookings/walk-1/payments/request",
        json={"method": "mpesa", "payer_ref": "+254700000001"},
    )

    assert response.status_code == 201
    assert response.json()["amount"] == 8000


@pytest.mark.integration
def test_balance_request_custom_amount_capped(client, future_slot):
    create_booking(client, future_slot)

    partial = client.post("/admin/bookings/bk-1/payments/request", json={"amount": 4000})
    too_much = client.post("/admin/bookings/bk-1/payments/request", json={"amount": 12000})

    assert partial.json()["amount"] == 4000
    assert too_much.status_code == 422
    assert too_much.json()["kind"] == "InvalidAmount"


@pytest.mark.integration
def test_balance_request_with_nothing_due(client, future_slot):
    create_booking(client, future_slot)
    client.post("/admin/bookings/bk-1/payments", json={"amount": 10000, "method": "cash"})

    response = client.post("/admin/bookings/bk-1/payments/request", json={})

    assert response.status_code == 422
    assert response.json()["error"] == "No balance due for this booking"


@pytest.mark.integration
def test_cash_has_no_gateway(client, future_slot):
    create_booking(client, future_slot)

    response = client.post("/admin/bookings/bk-1/payments/request", json={"method": "cash"})

    assert response.status_code == 400


@pytest.mark.integration
def test_declined_charge_records_nothing(client, future_slot):
    set_gateway(ConsolePaymentGateway(method=PaymentMethod.MPESA, failing_payers={"+254700000002"}))
    create_booking(client, future_slot)
    charge = client.post(
        "/admin/bookings/bk-1/payments/request",
        json={"method": "mpesa", "payer_ref": "+254700000002"},
    ).json()

    response = client.post(
        "/admin/bookings/bk-1/payments/confirm",
        json={"method": "mpesa", "reference": charge["reference"]},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Request cancelled by user"
    assert client.get("/admin/bookings/bk-1").json()["booking"]["deposit"] == 5000


@pytest.mark.integration
def test_confirm_unknown_reference_is_404(client, future_slot):
    create_booking(client, future_slot)

    response = client.post(
        "/admin/bookings/bk-1/payments/confirm",
        json={"method": "paystack", "reference": "ws_CO_missing"},
    )

    assert response.status_code == 404

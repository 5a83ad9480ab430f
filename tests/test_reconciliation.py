import pytest

from models import db
from models.booking import BookingStatus
from models.payment import Payment
from services.errors import InvalidState, NotFound, UpstreamGatewayError, ValidationError
from services.reconciliation import reconcile_order
from tests.conftest import login


def test_no_attempts_means_cancelled(app, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon, order_id="order_empty")
    gateway.order_payments["order_empty"] = []

    result = reconcile_order(booking.id, "order_empty")

    assert result.to_dict() == {"status": "cancelled", "payments_count": 0}
    assert booking.status == BookingStatus.PENDING_PAYMENT


def test_uncaptured_attempts_are_pending(app, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon, order_id="order_p")
    gateway.order_payments["order_p"] = [
        {"id": "pay_2", "status": "failed"},
        {"id": "pay_1", "status": "created"},
    ]

    result = reconcile_order(booking.id, "order_p")

    assert result.to_dict() == {"status": "pending", "payments_count": 2, "last_payment_status": "failed"}
    assert Payment.query.count() == 0


def test_captured_attempt_confirms_booking(app, factory, customer, salon, gateway, recorder):
    booking = factory.booking(customer, salon, order_id="order_c")
    gateway.order_payments["order_c"] = [
        {"id": "pay_failed", "status": "failed"},
        {"id": "pay_good", "status": "captured", "captured": True, "amount": 100000},
    ]

    result = reconcile_order(booking.id, "order_c")

    assert result.to_dict() == {"status": "captured", "payment_id": "pay_good"}
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_id == "pay_good"
    assert Payment.query.filter_by(gateway_payment_id="pay_good").count() == 1
    assert recorder.sent[0].title == "✅ Payment Successful!"


def test_confirmed_booking_short_circuits_without_gateway_call(app, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon, status=BookingStatus.CONFIRMED,
                              payment_id="pay_done", order_id="order_done")

    result = reconcile_order(booking.id, "order_done")

    assert result.to_dict() == {"status": "captured", "payment_id": "pay_done"}
    assert gateway.requests == []


def test_reconcile_after_webhook_does_not_double_record(app, factory, customer, salon, gateway, recorder):
    booking = factory.booking(customer, salon, order_id="order_w")
    gateway.order_payments["order_w"] = [{"id": "pay_w", "status": "captured", "amount": 100000}]

    reconcile_order(booking.id, "order_w")
    # booking now confirmed, second call never reaches the gateway
    reconcile_order(booking.id, "order_w")

    assert Payment.query.count() == 1
    assert len(gateway.calls("GET")) == 1
    assert len(recorder.sent) == 1


def test_missing_arguments(app):
    with pytest.raises(ValidationError):
        reconcile_order(None, "order_x")
    with pytest.raises(ValidationError):
        reconcile_order(1, "")


def test_unknown_booking(app, gateway):
    with pytest.raises(NotFound):
        reconcile_order(999, "order_x")


def test_gateway_error_propagates(app, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon)

    with pytest.raises(UpstreamGatewayError) as exc:
        reconcile_order(booking.id, "order_unknown")
    assert exc.value.message == "The id provided does not exist"
    assert exc.value.upstream_status == 400


def test_reconcile_route(app, client, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon, order_id="order_r")
    gateway.order_payments["order_r"] = []
    headers = login(app, client, customer)

    resp = client.post("/payments/reconcile", json={"booking_id": booking.id, "razorpay_order_id": "order_r"},
                       headers=headers)

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "cancelled", "payments_count": 0}

    resp = client.post("/payments/reconcile", json={"booking_id": 4040, "gateway_order_id": "order_r"},
                       headers=headers)
    assert resp.status_code == 404


def test_order_of_another_booking_is_rejected(app, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon, order_id="order_mine")
    gateway.order_payments["order_theirs"] = [{"id": "pay_theirs", "status": "captured", "amount": 100000}]

    with pytest.raises(InvalidState):
        reconcile_order(booking.id, "order_theirs")

    assert gateway.requests == []
    assert booking.status == BookingStatus.PENDING_PAYMENT
    assert Payment.query.count() == 0


def test_cheaper_capture_does_not_confirm_pricier_booking(app, factory, customer, salon, gateway, recorder):
    pricey = factory.booking(customer, salon, price="5000.00")
    gateway.order_payments["order_cheap"] = [{"id": "pay_cheap", "status": "captured", "amount": 10000}]

    with pytest.raises(InvalidState) as exc:
        reconcile_order(pricey.id, "order_cheap")

    assert exc.value.message == "Captured amount does not match booking price"
    db.session.refresh(pricey)
    assert pricey.status == BookingStatus.PENDING_PAYMENT
    assert pricey.payment_id is None
    assert Payment.query.count() == 0
    assert recorder.sent == []


def test_reconcile_route_hides_other_customers_booking(app, client, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon, order_id="order_victim")
    gateway.order_payments["order_victim"] = []
    stranger = factory.user(email="stranger@example.com")
    headers = login(app, client, stranger)

    resp = client.post("/payments/reconcile", json={"booking_id": booking.id, "gateway_order_id": "order_victim"},
                       headers=headers)

    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Booking not found"}
    assert gateway.requests == []


def test_reconcile_route_rejects_mismatched_order(app, client, factory, customer, salon, gateway):
    booking = factory.booking(customer, salon, order_id="order_mine")
    headers = login(app, client, customer)

    resp = client.post("/payments/reconcile", json={"booking_id": booking.id, "gateway_order_id": "order_other"},
                       headers=headers)

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Order does not belong to this booking"}

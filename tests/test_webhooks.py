import json
from decimal import Decimal

from config import TestConfig
from models import db
from models.audit_log import AuditLog
from models.booking import BookingStatus
from models.payment import Payment
from models.webhook_log import WebhookLog
from security.webhook_signature import compute_signature
from tests.conftest import payment_event, signed_post


def _counts():
    return (Payment.query.count(), WebhookLog.query.count(), AuditLog.query.count())


def test_capture_confirms_booking_and_writes_ledger(client, factory, customer, salon, recorder):
    booking = factory.booking(customer, salon, price="1000.00")

    resp = signed_post(client, payment_event("payment.captured", booking_id=booking.id, payment_id="pay_001"))

    assert resp.status_code == 200
    assert resp.get_json() == {"received": True, "booking_confirmed": True, "booking_id": booking.id}

    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_id == "pay_001"

    payment = Payment.query.filter_by(gateway_payment_id="pay_001").one()
    assert payment.amount == Decimal("1000.00")
    assert payment.platform_fee == Decimal("80.00")
    assert payment.salon_amount == Decimal("920.00")
    assert payment.salon_id == salon.id

    assert [m.title for m in recorder.sent] == ["✅ Payment Successful!"]
    assert "PIN: 4821" in recorder.sent[0].message

    log = WebhookLog.query.one()
    assert log.event_type == "payment.captured"
    assert log.status == "processed"


def test_duplicate_capture_is_idempotent(client, factory, customer, salon, recorder):
    booking = factory.booking(customer, salon)
    body = payment_event("payment.captured", booking_id=booking.id, payment_id="pay_dup")

    first = signed_post(client, body)
    second = signed_post(client, body)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.get_json() == {"received": True, "already_processed": True, "booking_id": booking.id}
    assert Payment.query.filter_by(gateway_payment_id="pay_dup").count() == 1
    assert len(recorder.sent) == 1


def test_authorized_event_is_treated_as_capture(client, factory, customer, salon):
    booking = factory.booking(customer, salon)

    resp = signed_post(client, payment_event("payment.authorized", booking_id=booking.id, payment_id="pay_auth"))

    assert resp.status_code == 200
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


def test_capture_settles_all_outstanding_penalties(client, factory, customer, salon):
    booking = factory.booking(customer, salon)
    p1 = factory.penalty(customer, "50.00")
    p2 = factory.penalty(customer, "75.00")
    waived = factory.penalty(customer, "20.00", is_waived=True)
    other_user = factory.user()
    foreign = factory.penalty(other_user, "30.00")

    signed_post(client, payment_event("payment.captured", booking_id=booking.id, payment_id="pay_pen"))

    for p in (p1, p2, waived, foreign):
        db.session.refresh(p)
    assert p1.is_paid and p1.paid_booking_id == booking.id and p1.paid_at is not None
    assert p2.is_paid and p2.paid_booking_id == booking.id
    assert not waived.is_paid
    assert not foreign.is_paid


def test_tampered_body_writes_nothing(client, factory, customer, salon, recorder):
    booking = factory.booking(customer, salon)
    raw = json.dumps(payment_event("payment.captured", booking_id=booking.id, payment_id="pay_y")).encode()
    signature = compute_signature(TestConfig.GATEWAY_WEBHOOK_SECRET, raw)
    tampered = raw.replace(b"pay_y", b"pay_z")
    before = _counts()

    resp = signed_post(client, None, raw=tampered, signature=signature)

    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid signature"}
    assert _counts() == before
    assert recorder.sent == []
    db.session.refresh(booking)
    assert booking.status == BookingStatus.PENDING_PAYMENT


def test_missing_signature_rejected(client, factory, customer, salon):
    booking = factory.booking(customer, salon)
    before = _counts()

    resp = signed_post(client, payment_event("payment.captured", booking_id=booking.id), signature="")

    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Signature required"}
    assert _counts() == before


def test_missing_booking_id_is_acknowledged(client):
    resp = signed_post(client, payment_event("payment.captured", payment_id="pay_orphan"))

    assert resp.status_code == 200
    assert resp.get_json() == {"received": True, "warning": "No booking_id"}
    assert Payment.query.count() == 0


def test_unknown_booking_returns_404(client):
    resp = signed_post(client, payment_event("payment.captured", booking_id=9999, payment_id="pay_ghost"))

    assert resp.status_code == 404
    assert WebhookLog.query.one().status == "failed"
    assert Payment.query.count() == 0


def test_unhandled_event_is_acknowledged(client):
    resp = signed_post(client, {"event": "refund.processed", "payload": {}})

    assert resp.status_code == 200
    assert resp.get_json() == {"received": True, "event": "refund.processed"}


def test_malformed_payload_is_400(client):
    resp = signed_post(client, None, raw=b"not json")
    assert resp.status_code == 400


def test_failure_marks_booking_failed(client, factory, customer, salon, recorder):
    booking = factory.booking(customer, salon)

    resp = signed_post(client, payment_event(
        "payment.failed", booking_id=booking.id, payment_id="pay_f", error_description="Card declined"))

    assert resp.status_code == 200
    assert resp.get_json() == {"received": True, "event": "payment.failed"}
    db.session.refresh(booking)
    assert booking.status == BookingStatus.PAYMENT_FAILED
    assert recorder.sent[0].title == "❌ Payment Failed"


def test_failure_never_downgrades_confirmed_booking(client, factory, customer, salon):
    booking = factory.booking(customer, salon)
    signed_post(client, payment_event("payment.captured", booking_id=booking.id, payment_id="pay_ok"))

    resp = signed_post(client, payment_event("payment.failed", booking_id=booking.id, payment_id="pay_retry"))

    assert resp.status_code == 200
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


def test_capture_after_failure_confirms(client, factory, customer, salon):
    booking = factory.booking(customer, salon)
    signed_post(client, payment_event("payment.failed", booking_id=booking.id, payment_id="pay_1"))

    signed_post(client, payment_event("payment.captured", booking_id=booking.id, payment_id="pay_2"))

    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_id == "pay_2"


def test_capture_on_cancelled_booking_records_payment_for_review(client, factory, customer, salon, recorder):
    booking = factory.booking(customer, salon, status=BookingStatus.CANCELLED)

    resp = signed_post(client, payment_event("payment.captured", booking_id=booking.id, payment_id="pay_late"))

    assert resp.status_code == 200
    assert resp.get_json()["needs_review"] is True
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert Payment.query.filter_by(gateway_payment_id="pay_late").count() == 1
    assert recorder.sent == []


def test_order_paid_is_only_acknowledged(client, factory, customer, salon):
    booking = factory.booking(customer, salon)
    body = {"event": "order.paid",
            "payload": {"order": {"entity": {"id": "order_1", "notes": {"booking_id": str(booking.id)}}}}}

    resp = signed_post(client, body)

    assert resp.status_code == 200
    assert resp.get_json()["booking_id"] == booking.id
    db.session.refresh(booking)
    assert booking.status == BookingStatus.PENDING_PAYMENT


def test_failed_confirmation_is_retried_by_gateway(client, factory, customer, salon, monkeypatch):
    booking = factory.booking(customer, salon)
    body = payment_event("payment.captured", booking_id=booking.id, payment_id="pay_retry")

    def boom(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr("services.ledger.settle_outstanding_penalties", boom)
    first = signed_post(client, body)

    assert first.status_code == 500
    assert first.get_json()["error"] == "Internal server error"
    # payment row is durable, booking is not yet confirmed
    assert Payment.query.filter_by(gateway_payment_id="pay_retry").count() == 1
    db.session.refresh(booking)
    assert booking.status == BookingStatus.PENDING_PAYMENT

    monkeypatch.undo()
    second = signed_post(client, body)

    assert second.status_code == 200
    db.session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED
    assert Payment.query.filter_by(gateway_payment_id="pay_retry").count() == 1


def test_unconfigured_secret_is_server_error(app, client):
    app.config["GATEWAY_WEBHOOK_SECRET"] = None

    resp = signed_post(client, {"event": "payment.captured"})

    assert resp.status_code == 500
    assert WebhookLog.query.count() == 0

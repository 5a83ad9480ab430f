import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from app import create_app
from config import TestConfig
from models import db
from models.booking import Booking, BookingStatus
from models.penalty import CancellationPenalty
from models.payout import PayoutScheduleSettings
from models.salon import Salon, SalonBankAccount
from models.user import Role, User
from security.password import hash_password
from security.session import create_session
from security.webhook_signature import SIGNATURE_HEADER, compute_signature
from services.gateway import GatewayClient
from services.notifications import InAppChannel, Notifier

PASSWORD = "correct horse battery"
CSRF = "test-csrf-token"


class RecordingChannel:
    name = "recording"

    def __init__(self):
        self.sent = []

    def send(self, msg):
        self.sent.append(msg)


class FakeGateway:
    """Routes httpx requests to canned gateway responses and records them."""

    def __init__(self):
        self.requests = []
        self.order_payments = {}
        self.refund_response = (200, {"id": "rfnd_001", "status": "processed"})
        self.order_counter = 0
        self.fund_account_response = (200, {"id": "fa_001", "entity": "fund_account", "active": True})
        self.validation_response = (200, {
            "id": "fav_001",
            "status": "completed",
            "results": {"account_status": "active", "registered_name": "Glow Studio Pvt Ltd",
                        "account_holder_name": "GLOW STUDIO PVT LTD"},
        })

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        path = request.url.path

        if request.method == "POST" and path.endswith("/orders"):
            self.order_counter += 1
            return httpx.Response(200, json={
                "id": f"order_{self.order_counter:03d}",
                "amount": body["amount"],
                "currency": body["currency"],
                "status": "created",
            })

        if request.method == "GET" and path.endswith("/payments") and "/orders/" in path:
            order_id = path.split("/orders/")[1].split("/")[0]
            if order_id not in self.order_payments:
                return httpx.Response(400, json={"error": {"description": "The id provided does not exist"}})
            items = self.order_payments[order_id]
            return httpx.Response(200, json={"entity": "collection", "count": len(items), "items": items})

        if request.method == "POST" and path.endswith("/refund"):
            status, payload = self.refund_response
            return httpx.Response(status, json=payload)

        if request.method == "POST" and path.endswith("/contacts"):
            return httpx.Response(200, json={"id": "cont_001", "entity": "contact", "name": body["name"]})

        if request.method == "POST" and path.endswith("/fund_accounts"):
            status, payload = self.fund_account_response
            return httpx.Response(status, json=payload)

        if request.method == "POST" and path.endswith("/fund_accounts/validations"):
            status, payload = self.validation_response
            return httpx.Response(status, json=payload)

        return httpx.Response(404, json={"error": {"description": "not found"}})

    def calls(self, method=None):
        return [r for r in self.requests if method is None or r[0] == method]


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def recorder(app):
    channel = RecordingChannel()
    app.extensions["notifier"] = Notifier([InAppChannel(), channel])
    return channel


@pytest.fixture()
def gateway(app):
    fake = FakeGateway()
    app.extensions["gateway"] = GatewayClient(
        key_id=app.config["GATEWAY_KEY_ID"],
        key_secret=app.config["GATEWAY_KEY_SECRET"],
        base_url=app.config["GATEWAY_BASE_URL"],
        transport=httpx.MockTransport(fake),
    )
    return fake


class Factory:
    def __init__(self, app):
        self.app = app
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, email=None, roles=("CUSTOMER",)):
        n = self._next()
        user = User(email=email or f"user{n}@example.com", password_hash=hash_password(PASSWORD), full_name=f"User {n}")
        for name in roles:
            user.roles.append(Role.query.filter_by(name=name).one())
        db.session.add(user)
        db.session.commit()
        return user

    def salon(self, name=None, owner=None, status="approved", is_active=True, accounts=None):
        n = self._next()
        salon = Salon(
            name=name or f"Salon {n}",
            owner_user_id=owner.id if owner else None,
            status=status,
            is_active=is_active,
        )
        db.session.add(salon)
        db.session.flush()
        for account in accounts if accounts is not None else [{"is_verified": True, "is_primary": True}]:
            db.session.add(SalonBankAccount(
                salon_id=salon.id,
                account_holder_name=account.get("holder", "Owner"),
                account_number=account.get("account_number", "000111222333"),
                ifsc_code=account.get("ifsc", "HDFC0000001"),
                upi_id=account.get("upi_id"),
                is_primary=account.get("is_primary", False),
                is_verified=account.get("is_verified", False),
            ))
        db.session.commit()
        return salon

    def booking(self, user, salon, price="1000.00", status=BookingStatus.PENDING_PAYMENT,
                payment_id=None, order_id=None):
        booking = Booking(
            user_id=user.id,
            salon_id=salon.id,
            salon_name=salon.name,
            service_name="Haircut",
            service_price=Decimal(price),
            booking_date=date(2026, 10, 25),
            booking_time="15:30",
            status=status,
            payment_id=payment_id,
            gateway_order_id=order_id,
            completion_pin="4821",
        )
        db.session.add(booking)
        db.session.commit()
        return booking

    def penalty(self, user, amount="50.00", is_paid=False, is_waived=False, collected_by=None, remitted=False):
        penalty = CancellationPenalty(
            user_id=user.id,
            penalty_amount=Decimal(amount),
            is_paid=is_paid,
            is_waived=is_waived,
            collected_by_salon_id=collected_by.id if collected_by else None,
            remitted_to_platform=remitted,
        )
        db.session.add(penalty)
        db.session.commit()
        return penalty

    def settings(self, **kwargs):
        settings = PayoutScheduleSettings.query.first()
        for key, value in kwargs.items():
            setattr(settings, key, value)
        db.session.commit()
        return settings


@pytest.fixture()
def factory(app):
    return Factory(app)


@pytest.fixture()
def customer(factory):
    return factory.user()


@pytest.fixture()
def admin(factory):
    return factory.user(email="admin@example.com", roles=("ADMIN",))


@pytest.fixture()
def salon(factory):
    owner = factory.user(email="owner@example.com", roles=("SALON_OWNER",))
    return factory.salon(name="Glow Studio", owner=owner)


def login(app, client, user):
    """Attach a live session cookie and CSRF pair; returns headers for writes."""
    with app.test_request_context():
        token = create_session(user.id)
    client.set_cookie(app.config["AUTH_COOKIE_NAME"], token)
    client.set_cookie("csrf_token", CSRF)
    return {"X-CSRF-Token": CSRF}


def signed_post(client, body, secret=TestConfig.GATEWAY_WEBHOOK_SECRET, raw=None, signature=None):
    raw = raw if raw is not None else json.dumps(body).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    sig = signature if signature is not None else compute_signature(secret, raw)
    if sig:
        headers[SIGNATURE_HEADER] = sig
    return client.post("/webhooks/gateway", data=raw, headers=headers)


def payment_event(event, booking_id=None, payment_id="pay_001", order_id="order_001", **extra):
    notes = {"booking_id": str(booking_id)} if booking_id is not None else {}
    entity = {"id": payment_id, "order_id": order_id, "status": "captured", "notes": notes}
    entity.update(extra)
    return {"event": event, "payload": {"payment": {"entity": entity}}}

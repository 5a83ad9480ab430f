from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from models.booking import BookingStatus
from models.payout import PayoutStatus, SalonPayout
from services import payouts
from services.errors import InvalidState, NotFound, ValidationError
from services.ledger import apply_capture
from services.payouts import (
    approve_payout,
    choose_destination,
    complete_payout,
    create_manual_payout,
    fail_payout,
    js_weekday,
    pending_balance,
    run_scheduled_payouts,
    update_settings,
)

MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)


def earn(factory, salon, customer, price):
    """Capture a booking at ``salon``; the salon earns 92% of ``price``."""
    booking = factory.booking(customer, salon, price=price)
    apply_capture(booking.id, f"pay_{booking.id}")
    return booking


@pytest.fixture()
def enabled(factory):
    return factory.settings(is_enabled=True, day_of_week=1, minimum_payout_amount=Decimal("500"),
                            auto_approve_threshold=Decimal("2000"))


def test_js_weekday_counts_from_sunday():
    assert js_weekday(date(2026, 10, 18)) == 0
    assert js_weekday(MONDAY) == 1
    assert js_weekday(date(2026, 10, 24)) == 6


def test_balance_is_earned_minus_outstanding_payouts(app, factory, customer, salon):
    earn(factory, salon, customer, "1000.00")
    earn(factory, salon, customer, "500.00")

    assert pending_balance(salon.id) == Decimal("1380.00")

    payout = create_manual_payout(salon.id, "380.00")
    assert pending_balance(salon.id) == Decimal("1000.00")

    fail_payout(payout.id, reason="bounced")
    assert pending_balance(salon.id) == Decimal("1380.00")


def test_weekly_run_applies_minimum_and_threshold(app, factory, customer, enabled, recorder):
    small = factory.salon(name="Small")
    big = factory.salon(name="Big")
    tiny = factory.salon(name="Tiny")
    earn(factory, small, customer, "1000.00")   # 920 -> auto approved
    earn(factory, big, customer, "3000.00")     # 2760 -> pending
    earn(factory, tiny, customer, "500.00")     # 460 -> below minimum

    now = datetime(2026, 10, 19, 6, 0)
    summary = run_scheduled_payouts(today=MONDAY, now=now)

    assert summary.to_dict() == {
        "success": True,
        "payoutsCreated": 2,
        "payoutsAutoApproved": 1,
        "salons": ["Small", "Big"],
        "autoApproved": ["Small"],
    }

    small_payout = SalonPayout.query.filter_by(salon_id=small.id).one()
    assert small_payout.status == PayoutStatus.PROCESSING
    assert small_payout.amount == Decimal("920.00")
    assert small_payout.processed_at == now
    assert small_payout.period_start == date(2026, 10, 12)
    assert small_payout.period_end == MONDAY

    big_payout = SalonPayout.query.filter_by(salon_id=big.id).one()
    assert big_payout.status == PayoutStatus.PENDING
    assert big_payout.amount == Decimal("2760.00")

    assert SalonPayout.query.filter_by(salon_id=tiny.id).count() == 0
    assert enabled.last_run_at == now
    assert enabled.next_run_at == datetime(2026, 10, 26, 6, 0)

    # everything earned is now spoken for
    assert pending_balance(small.id) == Decimal("0.00")
    assert run_scheduled_payouts(today=MONDAY, now=now).created == []


def test_null_threshold_disables_auto_approval(app, factory, customer, salon):
    factory.settings(is_enabled=True, day_of_week=1, minimum_payout_amount=Decimal("0"),
                     auto_approve_threshold=None)
    earn(factory, salon, customer, "100.00")

    summary = run_scheduled_payouts(today=MONDAY)

    assert summary.auto_approved == []
    assert SalonPayout.query.one().status == PayoutStatus.PENDING


def test_wrong_day_does_nothing(app, factory, customer, salon, enabled):
    earn(factory, salon, customer, "1000.00")

    summary = run_scheduled_payouts(today=TUESDAY)

    assert summary.to_dict() == {"success": True, "message": "Not scheduled payout day"}
    assert SalonPayout.query.count() == 0
    assert enabled.last_run_at is None


def test_disabled_does_nothing(app, factory, customer, salon):
    earn(factory, salon, customer, "1000.00")

    summary = run_scheduled_payouts(today=MONDAY)

    assert summary.skipped_reason == "Automated payouts are disabled"
    assert SalonPayout.query.count() == 0


def test_ineligible_salons_are_skipped(app, factory, customer, enabled):
    inactive = factory.salon(is_active=False)
    pending = factory.salon(status="pending")
    unverified = factory.salon(accounts=[{"is_verified": False, "is_primary": True}])
    no_account = factory.salon(accounts=[])
    for s in (inactive, pending, unverified, no_account):
        earn(factory, s, customer, "1000.00")

    summary = run_scheduled_payouts(today=MONDAY)

    assert summary.created == []
    assert SalonPayout.query.count() == 0


def test_one_salon_failing_does_not_stop_the_batch(app, factory, customer, enabled, monkeypatch):
    broken = factory.salon(name="Broken")
    fine = factory.salon(name="Fine")
    earn(factory, broken, customer, "1000.00")
    earn(factory, fine, customer, "1000.00")

    real_balance = payouts.pending_balance

    def flaky_balance(salon_id):
        if salon_id == broken.id:
            raise SQLAlchemyError("deadlock detected")
        return real_balance(salon_id)

    monkeypatch.setattr(payouts, "pending_balance", flaky_balance)

    summary = run_scheduled_payouts(today=MONDAY)

    assert summary.created == ["Fine"]
    assert len(summary.errors) == 1
    assert summary.errors[0].startswith("Failed to create payout for salon Broken")
    assert summary.to_dict()["errors"] == summary.errors


def test_non_database_error_is_isolated_and_run_is_stamped(app, factory, customer, enabled, monkeypatch):
    broken = factory.salon(name="Broken")
    fine = factory.salon(name="Fine")
    earn(factory, broken, customer, "1000.00")
    earn(factory, fine, customer, "1000.00")

    real_choose = payouts.choose_destination

    def bad_row(accounts):
        if accounts and accounts[0].salon_id == broken.id:
            raise ValueError("invalid decimal in bank account row")
        return real_choose(accounts)

    monkeypatch.setattr(payouts, "choose_destination", bad_row)

    summary = run_scheduled_payouts(today=MONDAY, now=datetime(2026, 10, 19, 3, 30))

    assert summary.created == ["Fine"]
    assert summary.errors == ["Failed to create payout for salon Broken: invalid decimal in bank account row"]
    settings = payouts.get_settings()
    assert settings.last_run_at == datetime(2026, 10, 19, 3, 30)
    assert settings.next_run_at == datetime(2026, 10, 26, 3, 30)


def test_destination_prefers_verified_primary(app, factory):
    salon = factory.salon(accounts=[
        {"is_verified": True, "account_number": "111"},
        {"is_verified": False, "is_primary": True, "account_number": "222"},
        {"is_verified": True, "is_primary": True, "account_number": "333"},
    ])
    assert choose_destination(salon.bank_accounts).account_number == "333"

    fallback = factory.salon(accounts=[
        {"is_verified": False, "is_primary": True, "account_number": "444"},
        {"is_verified": True, "account_number": "555"},
    ])
    assert choose_destination(fallback.bank_accounts).account_number == "555"


def test_upi_account_pays_out_via_upi(app, factory, customer, enabled):
    salon = factory.salon(accounts=[{"is_verified": True, "is_primary": True, "upi_id": "glow@okbank"}])
    earn(factory, salon, customer, "1000.00")

    run_scheduled_payouts(today=MONDAY)

    payout = SalonPayout.query.one()
    assert payout.payout_method == "upi"
    assert payout.upi_id == "glow@okbank"


def test_manual_payout_cannot_exceed_balance(app, factory, customer, salon):
    earn(factory, salon, customer, "1000.00")

    with pytest.raises(InvalidState):
        create_manual_payout(salon.id, "920.01")

    payout = create_manual_payout(salon.id, "920.00")
    assert payout.status == PayoutStatus.PENDING
    with pytest.raises(InvalidState):
        create_manual_payout(salon.id, "1")


def test_payout_lifecycle(app, factory, customer, salon, recorder):
    earn(factory, salon, customer, "1000.00")
    recorder.sent.clear()
    payout = create_manual_payout(salon.id, "500")

    with pytest.raises(InvalidState):
        complete_payout(payout.id, reference="UTR1")

    approve_payout(payout.id)
    assert payout.status == PayoutStatus.PROCESSING
    assert payout.processed_at is not None

    complete_payout(payout.id, reference="UTR123")
    assert payout.status == PayoutStatus.COMPLETED
    assert payout.reference == "UTR123"

    with pytest.raises(InvalidState):
        fail_payout(payout.id, reason="too late")

    assert [m.title for m in recorder.sent] == ["Payout approved", "Payout completed"]
    assert all(m.user_id == salon.owner_user_id for m in recorder.sent)


def test_unknown_payout(app):
    with pytest.raises(NotFound):
        approve_payout(77)


def test_update_settings_validates(app):
    settings = update_settings({"is_enabled": True, "day_of_week": 3, "auto_approve_threshold": None})
    assert settings.is_enabled is True
    assert settings.day_of_week == 3
    assert settings.auto_approve_threshold is None

    with pytest.raises(ValidationError):
        update_settings({"day_of_week": 7})
    with pytest.raises(ValidationError):
        update_settings({"minimum_payout_amount": "-1"})


def test_cron_route_requires_token(app, client, factory, enabled):
    assert client.post("/payouts/run").status_code == 401
    assert client.post("/payouts/run", headers={"Authorization": "Bearer nope"}).status_code == 401

    resp = client.post("/payouts/run", headers={"Authorization": "Bearer cron-test-token"})
    assert resp.status_code == 200
    assert resp.get_json()["success"] is True

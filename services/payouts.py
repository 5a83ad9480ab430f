"""Salon payouts: the weekly batch engine and the admin payout lifecycle.

Invariant: for every salon the outstanding payouts (pending, processing,
completed) never exceed the salon's share of captured payments.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import func

from models import db
from models.payment import Payment
from models.payout import PayoutScheduleSettings, PayoutStatus, SalonPayout
from models.salon import Salon, SalonBankAccount
from services.errors import InvalidState, NotFound, ValidationError
from services.fees import CENT, to_decimal
from services.notifications import notify
from utils.audit import log_event

logger = logging.getLogger(__name__)

RUN_INTERVAL = timedelta(days=7)


@dataclass
class PayoutRunSummary:
    skipped_reason: Optional[str] = None
    created: List[str] = field(default_factory=list)
    auto_approved: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        if self.skipped_reason:
            return {"success": True, "message": self.skipped_reason}
        out = {
            "success": True,
            "payoutsCreated": len(self.created),
            "payoutsAutoApproved": len(self.auto_approved),
            "salons": self.created,
            "autoApproved": self.auto_approved,
        }
        if self.errors:
            out["errors"] = self.errors
        return out


def js_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday, the convention stored in settings."""
    return (day.weekday() + 1) % 7


def get_settings() -> PayoutScheduleSettings:
    settings = PayoutScheduleSettings.query.order_by(PayoutScheduleSettings.id.asc()).first()
    if settings is None:
        raise NotFound("Payout schedule settings not found")
    return settings


def _parse_amount(value, name: str, allow_none: bool = False):
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{name} is required")
    try:
        amount = to_decimal(value).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number")
    if amount < 0:
        raise ValidationError(f"{name} cannot be negative")
    return amount


def update_settings(data: dict, admin_user_id: int = None) -> PayoutScheduleSettings:
    settings = get_settings()

    if "is_enabled" in data:
        settings.is_enabled = bool(data["is_enabled"])
    if "day_of_week" in data:
        try:
            day = int(data["day_of_week"])
        except (TypeError, ValueError):
            raise ValidationError("day_of_week must be an integer 0-6")
        if not 0 <= day <= 6:
            raise ValidationError("day_of_week must be an integer 0-6")
        settings.day_of_week = day
    if "minimum_payout_amount" in data:
        settings.minimum_payout_amount = _parse_amount(data["minimum_payout_amount"], "minimum_payout_amount")
    if "auto_approve_threshold" in data:
        settings.auto_approve_threshold = _parse_amount(
            data["auto_approve_threshold"], "auto_approve_threshold", allow_none=True)

    settings.updated_at = datetime.utcnow()
    db.session.commit()
    log_event("PAYOUT_SETTINGS_UPDATE", user_id=admin_user_id, entity="payout_settings", entity_id=settings.id,
              metadata={k: data[k] for k in data if k in (
                  "is_enabled", "day_of_week", "minimum_payout_amount", "auto_approve_threshold")})
    return settings


def total_earned(salon_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.salon_amount), 0))
        .filter(Payment.salon_id == salon_id, Payment.status == "captured")
        .scalar()
    )
    return to_decimal(total).quantize(CENT)


def total_paid_out(salon_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(SalonPayout.amount), 0))
        .filter(SalonPayout.salon_id == salon_id, SalonPayout.status.in_(PayoutStatus.OUTSTANDING))
        .scalar()
    )
    return to_decimal(total).quantize(CENT)


def pending_balance(salon_id: int) -> Decimal:
    return total_earned(salon_id) - total_paid_out(salon_id)


def choose_destination(accounts) -> Optional[SalonBankAccount]:
    verified = [a for a in accounts if a.is_verified]
    for account in verified:
        if account.is_primary:
            return account
    return verified[0] if verified else None


def payout_method_for(account: SalonBankAccount) -> str:
    return "upi" if account.upi_id else "bank_transfer"


def _eligible_salons():
    return (
        Salon.query
        .join(SalonBankAccount, SalonBankAccount.salon_id == Salon.id)
        .filter(Salon.is_active.is_(True), Salon.status == "approved")
        .distinct()
        .order_by(Salon.id.asc())
        .all()
    )


def _process_salon(salon: Salon, settings: PayoutScheduleSettings, today: date, now: datetime,
                   summary: PayoutRunSummary) -> None:
    balance = pending_balance(salon.id)
    minimum = to_decimal(settings.minimum_payout_amount)
    logger.info("Salon %s: pending balance %s", salon.name, balance)

    if balance <= 0 or balance < minimum:
        logger.info("Skipping salon %s: balance %s below minimum %s", salon.name, balance, minimum)
        return

    account = choose_destination(salon.bank_accounts)
    if account is None:
        logger.info("Skipping salon %s: no verified bank account", salon.name)
        return

    payout = SalonPayout(
        salon_id=salon.id,
        amount=balance,
        payout_method=payout_method_for(account),
        bank_account_id=account.id,
        upi_id=account.upi_id,
        status=PayoutStatus.PENDING,
        notes="Automated weekly payout",
        period_start=today - RUN_INTERVAL,
        period_end=today,
    )

    threshold = settings.auto_approve_threshold
    auto_approved = threshold is not None and balance <= to_decimal(threshold)
    if auto_approved:
        payout.status = PayoutStatus.PROCESSING
        payout.processed_at = now

    db.session.add(payout)
    db.session.commit()

    summary.created.append(salon.name)
    if auto_approved:
        summary.auto_approved.append(salon.name)
    logger.info("Created payout %s for salon %s: %s (%s)", payout.id, salon.name, balance, payout.status)


def run_scheduled_payouts(today: date = None, now: datetime = None) -> PayoutRunSummary:
    """Create one payout per eligible salon on the configured weekday.

    Safe to trigger daily: on any other day, or while disabled, it does
    nothing. One salon failing does not stop the rest.
    """
    now = now or datetime.utcnow()
    today = today or now.date()
    settings = get_settings()

    if not settings.is_enabled:
        logger.info("Automated payouts are disabled")
        return PayoutRunSummary(skipped_reason="Automated payouts are disabled")

    if js_weekday(today) != settings.day_of_week:
        logger.info("Today is %s, scheduled day is %s. Skipping.", js_weekday(today), settings.day_of_week)
        return PayoutRunSummary(skipped_reason="Not scheduled payout day")

    summary = PayoutRunSummary()
    salons = _eligible_salons()
    logger.info("Found %d active salons with bank accounts", len(salons))

    for salon in salons:
        salon_id, salon_name = salon.id, salon.name
        try:
            _process_salon(salon, settings, today, now, summary)
        except Exception as exc:
            db.session.rollback()
            logger.exception("Payout for salon %s failed", salon_id)
            summary.errors.append(f"Failed to create payout for salon {salon_name}: {exc}")

    settings = get_settings()
    settings.last_run_at = now
    settings.next_run_at = now + RUN_INTERVAL
    db.session.commit()

    log_event("PAYOUT_RUN", entity="payout_settings", entity_id=settings.id, metadata=summary.to_dict())
    return summary


def create_manual_payout(salon_id: int, amount, admin_user_id: int = None, notes: str = None) -> SalonPayout:
    salon = db.session.get(Salon, salon_id)
    if not salon:
        raise NotFound("Salon not found")

    amount = _parse_amount(amount, "amount")
    if amount <= 0:
        raise ValidationError("amount must be positive")

    balance = pending_balance(salon.id)
    if amount > balance:
        raise InvalidState(f"Amount exceeds unpaid balance of {balance}")

    account = choose_destination(salon.bank_accounts)
    if account is None:
        raise InvalidState("Salon has no verified bank account")

    payout = SalonPayout(
        salon_id=salon.id,
        amount=amount,
        payout_method=payout_method_for(account),
        bank_account_id=account.id,
        upi_id=account.upi_id,
        status=PayoutStatus.PENDING,
        notes=notes or "Manual payout",
        period_end=date.today(),
    )
    db.session.add(payout)
    db.session.commit()

    log_event("PAYOUT_CREATE", user_id=admin_user_id, entity="payout", entity_id=payout.id,
              metadata={"salon_id": salon.id, "amount": amount})
    return payout


def _load_payout(payout_id: int) -> SalonPayout:
    payout = db.session.get(SalonPayout, payout_id)
    if not payout:
        raise NotFound("Payout not found")
    return payout


def _notify_owner(payout: SalonPayout, title: str, message: str) -> None:
    salon = db.session.get(Salon, payout.salon_id)
    if salon and salon.owner_user_id:
        notify(salon.owner_user_id, title, message, "payout", link="/salon/earnings",
               data={"payout_id": payout.id})


def approve_payout(payout_id: int, admin_user_id: int = None) -> SalonPayout:
    payout = _load_payout(payout_id)
    if payout.status != PayoutStatus.PENDING:
        raise InvalidState(f'Payout status "{payout.status}" cannot be approved')

    now = datetime.utcnow()
    payout.status = PayoutStatus.PROCESSING
    payout.processed_at = now
    payout.updated_at = now
    db.session.commit()

    log_event("PAYOUT_APPROVE", user_id=admin_user_id, entity="payout", entity_id=payout.id)
    _notify_owner(payout, "Payout approved", f"Your payout of ₹{payout.amount} is being processed.")
    return payout


def complete_payout(payout_id: int, admin_user_id: int = None, reference: str = None) -> SalonPayout:
    payout = _load_payout(payout_id)
    if payout.status != PayoutStatus.PROCESSING:
        raise InvalidState(f'Payout status "{payout.status}" cannot be completed')

    now = datetime.utcnow()
    payout.status = PayoutStatus.COMPLETED
    payout.completed_at = now
    payout.updated_at = now
    payout.reference = reference
    db.session.commit()

    log_event("PAYOUT_COMPLETE", user_id=admin_user_id, entity="payout", entity_id=payout.id,
              metadata={"reference": reference})
    _notify_owner(payout, "Payout completed", f"₹{payout.amount} has been sent to your account.")
    return payout


def fail_payout(payout_id: int, admin_user_id: int = None, reason: str = None) -> SalonPayout:
    payout = _load_payout(payout_id)
    if payout.status not in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
        raise InvalidState(f'Payout status "{payout.status}" cannot be failed')

    payout.status = PayoutStatus.FAILED
    payout.failure_reason = reason
    payout.updated_at = datetime.utcnow()
    db.session.commit()

    log_event("PAYOUT_FAIL", user_id=admin_user_id, entity="payout", entity_id=payout.id,
              metadata={"reason": reason})
    # the amount returns to the salon's balance for the next run
    _notify_owner(payout, "Payout failed",
                  f"Your payout of ₹{payout.amount} could not be completed. It will be retried in the next cycle.")
    return payout

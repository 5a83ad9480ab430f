"""Booking/payment ledger updates driven by gateway capture and failure signals.

The payment row and the booking confirmation are written in two commits.
The payment row goes first so that a failed confirmation surfaces as an
error (the gateway retries and the retry finds the row already present).
The opposite gap, a confirmed booking whose payment insert failed, is
closed by ``repair_unrecorded_captures``.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.booking import Booking, BookingStatus, can_transition
from models.payment import Payment
from services.errors import NotFound, PartialWriteWarning
from services.fees import FeeSplit, compute_fee_split
from services.notifications import notify
from services.penalties import settle_outstanding_penalties
from utils.audit import log_event

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    booking_id: int
    payment_id: str
    already_processed: bool = False
    payment_created: bool = False
    booking_confirmed: bool = False
    needs_review: bool = False
    penalties_settled: List[int] = field(default_factory=list)


@dataclass
class FailureResult:
    booking_id: int
    updated: bool
    status: str


def _fee_split_for(booking: Booking) -> FeeSplit:
    return compute_fee_split(booking.service_price, current_app.config.get("PLATFORM_FEE_PERCENTAGE", 8))


def payment_exists(gateway_payment_id: str) -> bool:
    return Payment.query.filter_by(gateway_payment_id=gateway_payment_id).first() is not None


def record_payment(booking: Booking, gateway_payment_id: str, gateway_order_id: Optional[str],
                   captured_at: datetime = None) -> bool:
    """Insert the ledger row for a capture unless it already exists.

    Returns True when a row was created. The unique constraint on
    ``gateway_payment_id`` decides duplicates; the pre-check only saves a
    round trip. Other insert failures are logged and swallowed so the
    booking update can still proceed.
    """
    if payment_exists(gateway_payment_id):
        return False

    split = _fee_split_for(booking)
    row = Payment(
        booking_id=booking.id,
        user_id=booking.user_id,
        salon_id=booking.salon_id,
        amount=split.gross,
        currency=current_app.config.get("DEFAULT_CURRENCY", "INR"),
        status="captured",
        payment_method="gateway",
        gateway_order_id=gateway_order_id,
        gateway_payment_id=gateway_payment_id,
        platform_fee=split.platform_fee,
        salon_amount=split.salon_amount,
        fee_percentage=split.fee_percentage,
        captured_at=captured_at or datetime.utcnow(),
    )
    booking_id = booking.id
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if payment_exists(gateway_payment_id):
            logger.info("Payment %s recorded concurrently, skipping insert", gateway_payment_id)
            return False
        logger.error("Payment insert for booking %s failed (%s)", booking_id, PartialWriteWarning.__name__, exc_info=True)
        return False
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Payment insert for booking %s failed (%s)", booking_id, PartialWriteWarning.__name__, exc_info=True)
        return False

    logger.info("Payment %s recorded for booking %s: fee=%s salon=%s",
                gateway_payment_id, booking_id, split.platform_fee, split.salon_amount)
    return True


def _confirmation_message(booking: Booking) -> str:
    return (
        f"Your booking at {booking.salon_name} for {booking.service_name} on "
        f"{booking.booking_date.isoformat()} at {booking.booking_time} is confirmed. "
        f"PIN: {booking.completion_pin or '----'}"
    )


def apply_capture(booking_id: int, gateway_payment_id: str, gateway_order_id: Optional[str] = None,
                  source: str = "webhook") -> CaptureResult:
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")

    result = CaptureResult(booking_id=booking.id, payment_id=gateway_payment_id)

    # duplicate delivery of the capture we already applied, whatever the booking became since
    if booking.payment_id and booking.payment_id == gateway_payment_id:
        result.already_processed = True
        return result

    result.payment_created = record_payment(booking, gateway_payment_id, gateway_order_id)

    now = datetime.utcnow()
    settled = settle_outstanding_penalties(booking.user_id, booking.id, now=now)
    result.penalties_settled = [p.id for p in settled]

    if can_transition(booking.status, BookingStatus.CONFIRMED):
        booking.status = BookingStatus.CONFIRMED
        booking.payment_id = gateway_payment_id
        booking.payment_method = "gateway"
        if gateway_order_id and not booking.gateway_order_id:
            booking.gateway_order_id = gateway_order_id
        booking.updated_at = now
        result.booking_confirmed = True
    else:
        # money moved but the booking is past the point where it can be confirmed
        # (cancelled, refunded, or already confirmed by another payment)
        result.needs_review = True
        logger.warning("Capture %s for booking %s in status %s needs manual review",
                       gateway_payment_id, booking.id, booking.status)

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Failed to confirm booking %s after capture %s", booking_id, gateway_payment_id, exc_info=True)
        raise

    log_event("PAYMENT_CAPTURED", user_id=None, entity="booking", entity_id=booking.id, metadata={
        "payment_id": gateway_payment_id,
        "order_id": gateway_order_id,
        "source": source,
        "payment_created": result.payment_created,
        "needs_review": result.needs_review,
        "penalties_settled": result.penalties_settled,
    })

    # only after the state above is durable
    if result.booking_confirmed:
        notify(
            booking.user_id,
            "✅ Payment Successful!",
            _confirmation_message(booking),
            "payment",
            link="/my-bookings",
            data={"booking_id": booking.id},
            push_body=f"Booking confirmed at {booking.salon_name}. PIN: {booking.completion_pin or '----'}",
        )
    return result


def apply_failure(booking_id: int, reason: str = "Payment failed") -> FailureResult:
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")

    if booking.status == BookingStatus.PAYMENT_FAILED:
        return FailureResult(booking_id=booking.id, updated=False, status=booking.status)

    if not can_transition(booking.status, BookingStatus.PAYMENT_FAILED):
        # a failed retry never downgrades a confirmed booking
        logger.info("Ignoring payment failure for booking %s in status %s", booking.id, booking.status)
        return FailureResult(booking_id=booking.id, updated=False, status=booking.status)

    booking.status = BookingStatus.PAYMENT_FAILED
    booking.updated_at = datetime.utcnow()
    db.session.commit()

    log_event("PAYMENT_FAILED", user_id=None, entity="booking", entity_id=booking.id, metadata={"reason": reason})

    notify(
        booking.user_id,
        "❌ Payment Failed",
        f"Payment for your booking at {booking.salon_name} failed. Please try again or choose Pay at Salon.",
        "payment",
        link="/my-bookings",
        data={"booking_id": booking.id},
    )
    return FailureResult(booking_id=booking.id, updated=True, status=booking.status)


def find_unrecorded_captures() -> List[Booking]:
    """Bookings that hold a gateway payment id with no matching ledger row."""
    return (
        Booking.query
        .outerjoin(Payment, Payment.gateway_payment_id == Booking.payment_id)
        .filter(
            Booking.payment_id.isnot(None),
            Booking.status.in_([BookingStatus.CONFIRMED, BookingStatus.COMPLETED]),
            Payment.id.is_(None),
        )
        .order_by(Booking.id.asc())
        .all()
    )


def repair_unrecorded_captures() -> List[int]:
    repaired = []
    for booking in find_unrecorded_captures():
        booking_id = booking.id
        if record_payment(booking, booking.payment_id, booking.gateway_order_id, captured_at=booking.updated_at):
            repaired.append(booking_id)
        else:
            logger.error("Could not repair ledger row for booking %s", booking_id)

    if repaired:
        log_event("LEDGER_REPAIRED", entity="payment", metadata={"booking_ids": repaired})
    return repaired

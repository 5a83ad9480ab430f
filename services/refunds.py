import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import current_app

from models import db
from models.booking import Booking, BookingStatus
from services.errors import InvalidState, NotFound, ValidationError
from services.fees import CENT, to_decimal, to_minor_units
from services.gateway import get_gateway
from services.notifications import notify
from utils.audit import log_event

logger = logging.getLogger(__name__)


@dataclass
class RefundResult:
    booking_id: int
    refund_amount: Decimal
    refund_status: str
    refund_id: Optional[str]
    via_gateway: bool
    estimated_days: str

    def to_dict(self) -> dict:
        return {
            "success": True,
            "message": "Refund processed successfully" if self.via_gateway
            else "Refund initiated - manual processing required",
            "refund_id": self.refund_id,
            "refund_status": self.refund_status,
            "refund_amount": float(self.refund_amount),
            "estimated_days": self.estimated_days,
            "booking_id": self.booking_id,
        }


def _resolve_amount(booking: Booking, refund_amount) -> Decimal:
    price = to_decimal(booking.service_price).quantize(CENT)
    if refund_amount in (None, "", 0):
        return price
    try:
        amount = to_decimal(refund_amount).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError("refund_amount must be a number")
    if amount <= 0:
        raise ValidationError("refund_amount must be positive")
    if amount > price:
        raise ValidationError("refund_amount cannot exceed the booking price")
    return amount


def process_refund(booking_id: int, refund_amount=None, admin_user_id: int = None) -> RefundResult:
    """Refund a booking through the gateway, or flag it for manual refund.

    Bookings without a captured payment (pay-at-salon, failed payments)
    never reach the gateway. A gateway error leaves the booking unchanged.
    """
    if not booking_id:
        raise ValidationError("booking_id is required")

    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")

    if booking.status not in BookingStatus.REFUNDABLE:
        raise InvalidState(f'Booking status "{booking.status}" is not eligible for refund')

    amount = _resolve_amount(booking, refund_amount)
    previous_status = booking.status
    estimated_days = current_app.config.get("REFUND_ESTIMATED_DAYS", "5-7 business days")

    refund_id = None
    if booking.payment_id:
        logger.info("Refunding payment %s for booking %s: %s", booking.payment_id, booking.id, amount)
        data = get_gateway().refund_payment(
            booking.payment_id,
            to_minor_units(amount),
            notes={"booking_id": str(booking.id), "reason": "Customer requested cancellation"},
        )
        refund_id = data.get("id")
        refund_status = data.get("status") or "processed"
        booking.status = BookingStatus.REFUNDED
    else:
        logger.info("Booking %s has no captured payment, manual refund required", booking.id)
        refund_status = "manual_required"
        booking.status = BookingStatus.REFUND_INITIATED

    booking.updated_at = datetime.utcnow()
    db.session.commit()

    via_gateway = booking.status == BookingStatus.REFUNDED
    log_event(
        "REFUND_PROCESSED" if via_gateway else "REFUND_MANUAL_REQUIRED",
        user_id=admin_user_id,
        entity="booking",
        entity_id=booking.id,
        metadata={
            "previous_status": previous_status,
            "new_status": booking.status,
            "refund_amount": amount,
            "refund_id": refund_id,
            "refund_status": refund_status,
        },
    )

    if via_gateway:
        title = "✅ Refund Processed"
        message = (f"Your refund of ₹{amount} for {booking.salon_name} booking has been processed. "
                   f"It will be credited to your original payment method within {estimated_days}.")
    else:
        title = "💸 Refund Initiated"
        message = (f"Your refund of ₹{amount} for {booking.salon_name} booking has been initiated. "
                   f"Our team will process it within {estimated_days}.")
    notify(booking.user_id, title, message, "refund", link="/my-bookings", data={"booking_id": booking.id})

    return RefundResult(
        booking_id=booking.id,
        refund_amount=amount,
        refund_status=refund_status,
        refund_id=refund_id,
        via_gateway=via_gateway,
        estimated_days=estimated_days,
    )

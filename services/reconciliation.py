import logging
from dataclasses import dataclass, asdict
from typing import Optional

from models import db
from models.booking import Booking, BookingStatus
from services.errors import InvalidState, NotFound, ValidationError
from services.fees import to_minor_units
from services.gateway import get_gateway
from services.ledger import apply_capture

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    status: str  # captured, pending, cancelled
    payment_id: Optional[str] = None
    payments_count: Optional[int] = None
    last_payment_status: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _is_captured(attempt: dict) -> bool:
    return attempt.get("status") == "captured" or attempt.get("captured") is True


def reconcile_order(booking_id: int, gateway_order_id: str, user_id: int = None) -> ReconcileResult:
    """Pull the order's payment attempts from the gateway and apply a capture.

    Fallback for when the capture webhook is late or lost; clients call it
    after returning from the payment page. The capture only counts when it
    belongs to the booking's own order and is for the booking's price.
    """
    if not booking_id or not gateway_order_id:
        raise ValidationError("booking_id and gateway_order_id are required")

    booking = db.session.get(Booking, booking_id)
    if not booking or (user_id is not None and booking.user_id != user_id):
        raise NotFound("Booking not found")

    if booking.gateway_order_id and booking.gateway_order_id != gateway_order_id:
        logger.warning("Reconcile for booking %s named order %s, booking has %s",
                       booking_id, gateway_order_id, booking.gateway_order_id)
        raise InvalidState("Order does not belong to this booking")

    if booking.payment_id and booking.status == BookingStatus.CONFIRMED:
        return ReconcileResult(status="captured", payment_id=booking.payment_id)

    attempts = get_gateway().fetch_order_payments(gateway_order_id)

    if not attempts:
        # the user never got as far as a payment attempt
        return ReconcileResult(status="cancelled", payments_count=0)

    captured = next((a for a in attempts if _is_captured(a)), None)
    if captured is None:
        # gateway lists the most recent attempt first
        return ReconcileResult(
            status="pending",
            payments_count=len(attempts),
            last_payment_status=attempts[0].get("status"),
        )

    payment_id = captured.get("id")
    expected = to_minor_units(booking.service_price)
    if captured.get("amount") != expected:
        logger.warning("Capture %s on order %s is for %s, booking %s costs %s",
                       payment_id, gateway_order_id, captured.get("amount"), booking_id, expected)
        raise InvalidState("Captured amount does not match booking price")

    logger.info("Reconciled capture %s for booking %s from order %s", payment_id, booking_id, gateway_order_id)
    apply_capture(booking_id, payment_id, gateway_order_id, source="reconcile")
    return ReconcileResult(status="captured", payment_id=payment_id)

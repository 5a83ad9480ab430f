import logging
import time
from datetime import datetime

from flask import current_app

from models import db
from models.booking import Booking, BookingStatus
from security.webhook_signature import verify_checkout_signature
from services.errors import InvalidState, NotFound, ValidationError
from services.fees import to_minor_units
from services.gateway import get_gateway
from services.ledger import apply_capture

logger = logging.getLogger(__name__)


def create_order(booking_id: int, user_id: int = None, receipt: str = None, notes: dict = None) -> dict:
    """Open a gateway order for the booking's own price.

    The amount always comes from the booking row, never from the client.
    """
    if not booking_id:
        raise ValidationError("Booking ID is required")

    booking = db.session.get(Booking, booking_id)
    if not booking or (user_id is not None and booking.user_id != user_id):
        raise NotFound("Booking not found")

    if booking.status not in BookingStatus.PAYABLE:
        raise InvalidState("Booking cannot be paid for")

    currency = current_app.config.get("DEFAULT_CURRENCY", "INR")
    order_notes = dict(notes or {})
    order_notes["booking_id"] = str(booking.id)

    order = get_gateway().create_order(
        amount_minor=to_minor_units(booking.service_price),
        currency=currency,
        receipt=receipt or f"receipt_{int(time.time() * 1000)}",
        notes=order_notes,
    )

    booking.gateway_order_id = order.get("id")
    booking.updated_at = datetime.utcnow()
    db.session.commit()

    logger.info("Created gateway order %s for booking %s", booking.gateway_order_id, booking.id)
    return {
        "orderId": order.get("id"),
        "amount": order.get("amount"),
        "currency": order.get("currency", currency),
        "keyId": current_app.config.get("GATEWAY_KEY_ID"),
    }


def verify_checkout(order_id: str, payment_id: str, signature: str, booking_id: int = None,
                    user_id: int = None) -> dict:
    """Check the checkout signature and confirm the booking it paid for.

    The signature only proves the gateway issued ``payment_id`` for
    ``order_id``. The booking is bound through the order ``create_order``
    opened for it, which carries the booking's price.
    """
    verify_checkout_signature(order_id, payment_id, signature, current_app.config.get("GATEWAY_KEY_SECRET"))

    if booking_id:
        booking = db.session.get(Booking, booking_id)
        if not booking or (user_id is not None and booking.user_id != user_id):
            raise NotFound("Booking not found")
        if booking.gateway_order_id != order_id:
            logger.warning("Checkout for booking %s named order %s, booking has %s",
                           booking_id, order_id, booking.gateway_order_id)
            raise InvalidState("Order does not belong to this booking")
        apply_capture(booking_id, payment_id, order_id, source="checkout")

    return {"success": True, "message": "Payment verified successfully", "payment_id": payment_id}

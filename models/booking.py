from datetime import datetime
from models.db import db


class BookingStatus:
    PENDING_PAYMENT = "pending_payment"
    UPCOMING = "upcoming"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    REFUND_INITIATED = "refund_initiated"
    REFUND_PROCESSING = "refund_processing"
    REFUNDED = "refunded"
    REFUND_COMPLETED = "refund_completed"
    REFUND_FAILED = "refund_failed"

    # states a user can still pay for (first attempt or retry)
    PAYABLE = (PENDING_PAYMENT, PAYMENT_FAILED, UPCOMING)
    REFUNDABLE = (CONFIRMED, UPCOMING, PENDING_PAYMENT)
    TERMINAL = (COMPLETED, REFUNDED, REFUND_COMPLETED)


_TRANSITIONS = {
    BookingStatus.PENDING_PAYMENT: {
        BookingStatus.CONFIRMED,
        BookingStatus.PAYMENT_FAILED,
        BookingStatus.CANCELLED,
        BookingStatus.REFUNDED,
        BookingStatus.REFUND_INITIATED,
    },
    BookingStatus.UPCOMING: {
        BookingStatus.CONFIRMED,
        BookingStatus.COMPLETED,
        BookingStatus.PAYMENT_FAILED,
        BookingStatus.CANCELLED,
        BookingStatus.REFUNDED,
        BookingStatus.REFUND_INITIATED,
    },
    BookingStatus.PAYMENT_FAILED: {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.REFUNDED,
        BookingStatus.REFUND_INITIATED,
    },
    BookingStatus.CANCELLED: {
        BookingStatus.REFUND_INITIATED,
    },
    BookingStatus.REFUND_INITIATED: {
        BookingStatus.REFUND_PROCESSING,
        BookingStatus.REFUND_COMPLETED,
        BookingStatus.REFUND_FAILED,
    },
    BookingStatus.REFUND_PROCESSING: {
        BookingStatus.REFUND_COMPLETED,
        BookingStatus.REFUND_FAILED,
    },
    BookingStatus.REFUND_FAILED: {
        BookingStatus.REFUND_INITIATED,
    },
}


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, set())


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.id"), nullable=False, index=True)

    # denormalized for notifications and receipts
    salon_name = db.Column(db.String(160), nullable=False)
    service_name = db.Column(db.String(160), nullable=False)

    service_price = db.Column(db.Numeric(10, 2), nullable=False)
    booking_date = db.Column(db.Date, nullable=False)
    booking_time = db.Column(db.String(10), nullable=False)  # "HH:MM"

    status = db.Column(db.String(30), nullable=False, default=BookingStatus.PENDING_PAYMENT, index=True)

    # gateway references; payment_id is only set once a capture is seen
    gateway_order_id = db.Column(db.String(64), nullable=True, index=True)
    payment_id = db.Column(db.String(64), nullable=True, index=True)
    payment_method = db.Column(db.String(30), nullable=True)

    completion_pin = db.Column(db.String(8), nullable=True)
    reminder_sent = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

from datetime import datetime
from models.db import db

class Payment(db.Model):
    """Append-only record of a captured charge. Rows are never updated."""

    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)   # major units (rupees)
    currency = db.Column(db.String(10), nullable=False, default="INR")
    status = db.Column(db.String(20), nullable=False, default="captured")
    payment_method = db.Column(db.String(30), nullable=False, default="gateway")

    gateway_order_id = db.Column(db.String(64), nullable=True, index=True)
    gateway_payment_id = db.Column(db.String(64), nullable=False)

    platform_fee = db.Column(db.Numeric(10, 2), nullable=False)
    salon_amount = db.Column(db.Numeric(10, 2), nullable=False)
    fee_percentage = db.Column(db.Numeric(5, 2), nullable=False)

    captured_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # one ledger row per gateway payment, the real idempotency guard
        db.UniqueConstraint("gateway_payment_id", name="uq_payments_gateway_payment_id"),
    )

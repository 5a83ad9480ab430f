import json
from datetime import datetime
from models.db import db

class CancellationPenalty(db.Model):
    __tablename__ = "cancellation_penalties"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # booking whose late cancellation created the penalty
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True)

    penalty_amount = db.Column(db.Numeric(10, 2), nullable=False)

    is_paid = db.Column(db.Boolean, default=False, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    # booking whose payment settled it
    paid_booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True)

    is_waived = db.Column(db.Boolean, default=False, nullable=False)
    waived_at = db.Column(db.DateTime, nullable=True)
    waived_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    waive_reason = db.Column(db.String(255), nullable=True)

    # set when a salon collected the fee in cash on the platform's behalf
    collected_by_salon_id = db.Column(db.Integer, db.ForeignKey("salons.id"), nullable=True, index=True)
    # the salon has handed that cash over
    remitted_to_platform = db.Column(db.Boolean, default=False, nullable=False)
    remitted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class SalonPenaltyRemittance(db.Model):
    """One hand-over of cash-collected penalties from a salon to the platform."""

    __tablename__ = "salon_penalty_remittances"

    id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.id"), nullable=False, index=True)
    # set when the amount was netted off a payout instead of paid separately
    payout_id = db.Column(db.Integer, db.ForeignKey("salon_payouts.id"), nullable=True)

    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    penalty_ids_json = db.Column(db.Text, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    remitted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def penalty_ids(self) -> list:
        return json.loads(self.penalty_ids_json) if self.penalty_ids_json else []

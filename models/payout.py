from datetime import datetime
from models.db import db


class PayoutStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    # payouts that count against a salon's earned balance
    OUTSTANDING = (COMPLETED, PROCESSING, PENDING)


class SalonPayout(db.Model):
    __tablename__ = "salon_payouts"

    id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payout_method = db.Column(db.String(20), nullable=False)  # upi, bank_transfer
    bank_account_id = db.Column(db.Integer, db.ForeignKey("salon_bank_accounts.id"), nullable=True)
    upi_id = db.Column(db.String(120), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=PayoutStatus.PENDING, index=True)

    period_start = db.Column(db.Date, nullable=True)
    period_end = db.Column(db.Date, nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(64), nullable=True)  # bank UTR once paid
    failure_reason = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class PayoutScheduleSettings(db.Model):
    __tablename__ = "payout_schedule_settings"

    id = db.Column(db.Integer, primary_key=True)
    is_enabled = db.Column(db.Boolean, default=False, nullable=False)

    # 0 = Sunday ... 6 = Saturday (UTC)
    day_of_week = db.Column(db.Integer, nullable=False, default=1)
    minimum_payout_amount = db.Column(db.Numeric(10, 2), nullable=False, default=500)
    # null disables auto-approval
    auto_approve_threshold = db.Column(db.Numeric(10, 2), nullable=True)

    last_run_at = db.Column(db.DateTime, nullable=True)
    next_run_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

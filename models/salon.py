from datetime import datetime
from models.db import db

class Salon(db.Model):
    __tablename__ = "salons"

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    name = db.Column(db.String(160), nullable=False)

    # pending, approved, rejected
    status = db.Column(db.String(20), nullable=False, default="pending")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    bank_accounts = db.relationship(
        "SalonBankAccount",
        back_populates="salon",
        order_by="SalonBankAccount.id",
    )


class SalonBankAccount(db.Model):
    __tablename__ = "salon_bank_accounts"

    id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.id"), nullable=False, index=True)

    account_holder_name = db.Column(db.String(120), nullable=True)
    account_number = db.Column(db.String(34), nullable=True)
    ifsc_code = db.Column(db.String(11), nullable=True)
    upi_id = db.Column(db.String(120), nullable=True)

    is_primary = db.Column(db.Boolean, default=False, nullable=False)
    # set once penny-drop validation succeeds
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    gateway_contact_id = db.Column(db.String(64), nullable=True)
    gateway_fund_account_id = db.Column(db.String(64), nullable=True)
    # created, completed, failed as reported by the gateway
    verification_status = db.Column(db.String(20), nullable=True)
    bank_holder_name = db.Column(db.String(120), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    salon = db.relationship("Salon", back_populates="bank_accounts")

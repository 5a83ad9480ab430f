"""Penny-drop verification of salon bank accounts.

Payouts only ever go to verified accounts, so this is the only way an
account becomes eligible. The gateway sends ₹1 to the account and reports
the holder name the bank has on file.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from flask import current_app

from models import db
from models.salon import Salon, SalonBankAccount
from services.errors import NotFound, UpstreamGatewayError, ValidationError
from services.gateway import get_gateway
from utils.audit import log_event

logger = logging.getLogger(__name__)

PENNY_DROP_MINOR = 100


@dataclass
class BankVerificationResult:
    verified: bool
    status: Optional[str]
    fund_account_id: str
    account_holder_name_from_bank: Optional[str] = None

    @property
    def message(self) -> str:
        if self.verified:
            return "Bank account verified successfully"
        return "Verification in progress. Status will be updated shortly."

    def to_dict(self) -> dict:
        out = asdict(self)
        out["message"] = self.message
        return out


def _load_account(account_id: int, owner_user_id: int = None) -> SalonBankAccount:
    account = db.session.get(SalonBankAccount, account_id)
    if not account:
        raise NotFound("Bank account not found")
    if owner_user_id is not None:
        salon = db.session.get(Salon, account.salon_id)
        if salon is None or salon.owner_user_id != owner_user_id:
            raise NotFound("Bank account not found")
    return account


def _ensure_fund_account(account: SalonBankAccount) -> str:
    """Create the gateway contact and fund account once; later checks reuse them."""
    if account.gateway_fund_account_id:
        return account.gateway_fund_account_id

    gateway = get_gateway()
    if not account.gateway_contact_id:
        contact = gateway.create_contact(account.account_holder_name, reference_id=f"salon_bank_{account.id}")
        account.gateway_contact_id = contact.get("id")
        logger.info("Created gateway contact %s for bank account %s", account.gateway_contact_id, account.id)

    fund_account = gateway.create_fund_account(
        account.gateway_contact_id,
        holder_name=account.account_holder_name,
        ifsc=account.ifsc_code,
        account_number=account.account_number,
    )
    account.gateway_fund_account_id = fund_account.get("id")
    logger.info("Created fund account %s for bank account %s", account.gateway_fund_account_id, account.id)
    return account.gateway_fund_account_id


def verify_bank_account(account_id: int, user_id: int = None, owner_user_id: int = None) -> BankVerificationResult:
    """Run a penny drop against the account and record what the bank said.

    ``owner_user_id`` limits the call to the owner of the account's salon.
    A gateway rejection of the bank details marks the account failed and
    re-raises so the caller can show the gateway's reason.
    """
    account = _load_account(account_id, owner_user_id)
    if not (account.account_number and account.ifsc_code and account.account_holder_name):
        raise ValidationError("Missing required fields")

    try:
        fund_account_id = _ensure_fund_account(account)
        validation = get_gateway().validate_fund_account(
            fund_account_id,
            amount_minor=PENNY_DROP_MINOR,
            currency=current_app.config.get("DEFAULT_CURRENCY", "INR"),
            notes={"purpose": "bank_account_verification", "account_id": str(account.id)},
        )
    except UpstreamGatewayError as exc:
        # keep whatever contact/fund account was created so a retry reuses it
        account.is_verified = False
        account.verification_status = "failed"
        db.session.commit()
        log_event("BANK_ACCOUNT_VERIFICATION_FAILED", user_id=user_id, entity="bank_account", entity_id=account.id,
                  metadata={"error": exc.message, "fund_account_id": account.gateway_fund_account_id})
        raise

    status = validation.get("status")
    results = validation.get("results") or {}
    verified = status == "completed"

    account.is_verified = verified
    account.verification_status = status
    account.bank_holder_name = results.get("account_holder_name")
    account.verified_at = datetime.utcnow() if verified else None
    db.session.commit()

    logger.info("Bank account %s validation %s (verified=%s)", account.id, status, verified)
    log_event("BANK_ACCOUNT_VERIFICATION", user_id=user_id, entity="bank_account", entity_id=account.id, metadata={
        "status": status,
        "verified": verified,
        "fund_account_id": fund_account_id,
        "account_holder_name_from_bank": account.bank_holder_name,
    })

    return BankVerificationResult(
        verified=verified,
        status=status,
        fund_account_id=fund_account_id,
        account_holder_name_from_bank=account.bank_holder_name,
    )

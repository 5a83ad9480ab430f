import hmac

from flask import Blueprint, request, jsonify, current_app

from services.errors import PaymentError
from services.payouts import run_scheduled_payouts

payouts_bp = Blueprint("payouts", __name__, url_prefix="/payouts")


def _cron_authorized() -> bool:
    token = current_app.config.get("PAYOUT_CRON_TOKEN")
    if not token:
        return True
    header = request.headers.get("Authorization", "")
    supplied = header[len("Bearer "):] if header.startswith("Bearer ") else ""
    return hmac.compare_digest(supplied.encode("utf-8"), token.encode("utf-8"))


@payouts_bp.post("/run")
def run():
    if not _cron_authorized():
        return jsonify(success=False, error="Unauthorized"), 401

    try:
        summary = run_scheduled_payouts()
    except PaymentError as exc:
        return jsonify(success=False, error=exc.message), 500
    return jsonify(summary.to_dict()), 200

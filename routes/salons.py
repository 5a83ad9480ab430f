from flask import Blueprint, jsonify, g

from security.rbac import require_roles
from services.bank_accounts import verify_bank_account
from services.errors import PaymentError, UpstreamGatewayError
from services.penalties import collect_penalties_at_salon

salons_bp = Blueprint("salons", __name__, url_prefix="/salons")


def _owner_scope():
    # admins act on any salon, owners only on their own
    return None if g.user.has_any_role("ADMIN") else g.user.id


@salons_bp.post("/bank-accounts/<int:account_id>/verify")
@require_roles("SALON_OWNER", "ADMIN")
def verify_account(account_id):
    try:
        result = verify_bank_account(account_id, user_id=g.user.id, owner_user_id=_owner_scope())
    except UpstreamGatewayError as exc:
        return jsonify(verified=False, error=exc.message,
                       details="Bank account details could not be validated"), 400
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(result.to_dict()), 200


@salons_bp.post("/bookings/<int:booking_id>/penalties/collect")
@require_roles("SALON_OWNER", "ADMIN")
def collect_penalties(booking_id):
    try:
        penalties = collect_penalties_at_salon(booking_id, collector_user_id=g.user.id,
                                               owner_user_id=_owner_scope())
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(
        collected=len(penalties),
        total_amount=float(sum(p.penalty_amount for p in penalties)) if penalties else 0.0,
        penalty_ids=[p.id for p in penalties],
    ), 200

from flask import Blueprint, request, jsonify, g

from security.rbac import require_roles
from services.checkout import create_order, verify_checkout
from services.errors import NotFound, PaymentError
from services.reconciliation import reconcile_order
from services.refunds import process_refund
from utils.audit import log_event
from utils.auth_context import login_required

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _int_or_none(value):
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


@payments_bp.post("/orders")
@login_required
def start_order():
    data = request.get_json(silent=True) or {}
    booking_id = _int_or_none(data.get("booking_id"))
    notes = data.get("notes") if isinstance(data.get("notes"), dict) else None

    try:
        order = create_order(booking_id, user_id=g.user.id, receipt=data.get("receipt"), notes=notes)
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code

    log_event("PAYMENT_ORDER_CREATED", user_id=g.user.id, entity="booking", entity_id=booking_id,
              metadata={"order_id": order["orderId"]})
    return jsonify(order), 200


@payments_bp.post("/verify")
@login_required
def verify_payment():
    data = request.get_json(silent=True) or {}
    order_id = data.get("gateway_order_id") or data.get("razorpay_order_id")
    payment_id = data.get("gateway_payment_id") or data.get("razorpay_payment_id")
    signature = data.get("gateway_signature") or data.get("razorpay_signature")
    booking_id = _int_or_none(data.get("booking_id"))

    try:
        result = verify_checkout(order_id, payment_id, signature, booking_id=booking_id, user_id=g.user.id)
    except NotFound as exc:
        return jsonify(success=False, error=exc.message), 404
    except PaymentError as exc:
        return jsonify(success=False, error=exc.message), 400
    return jsonify(result), 200


@payments_bp.post("/reconcile")
@login_required
def reconcile():
    data = request.get_json(silent=True) or {}
    booking_id = _int_or_none(data.get("booking_id"))
    order_id = data.get("gateway_order_id") or data.get("razorpay_order_id")

    try:
        result = reconcile_order(booking_id, order_id, user_id=g.user.id)
    except NotFound as exc:
        return jsonify(error=exc.message), 404
    except PaymentError as exc:
        return jsonify(error=exc.message), 400
    return jsonify(result.to_dict()), 200


@payments_bp.post("/refunds")
@require_roles("ADMIN")
def refund():
    data = request.get_json(silent=True) or {}
    booking_id = _int_or_none(data.get("booking_id"))

    try:
        result = process_refund(booking_id, data.get("refund_amount"), admin_user_id=g.user.id)
    except PaymentError as exc:
        log_event("REFUND_FAIL", user_id=g.user.id, entity="booking", entity_id=booking_id,
                  metadata={"error": exc.message})
        return jsonify(success=False, error=exc.message), 400
    return jsonify(result.to_dict()), 200

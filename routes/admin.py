import json

from flask import Blueprint, jsonify, g, request

from models.payout import SalonPayout
from models.webhook_log import WebhookLog
from security.rbac import require_roles
from services.errors import PaymentError
from services.ledger import find_unrecorded_captures
from services.payouts import (
    approve_payout,
    complete_payout,
    create_manual_payout,
    fail_payout,
    get_settings,
    pending_balance,
    update_settings,
)
from services.penalties import (
    outstanding_remittances_by_salon,
    remit_penalties,
    remittance_history,
    waive_penalty,
)

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _money(value):
    return float(value) if value is not None else None


def _settings_json(s):
    return {
        "id": s.id,
        "is_enabled": s.is_enabled,
        "day_of_week": s.day_of_week,
        "minimum_payout_amount": _money(s.minimum_payout_amount),
        "auto_approve_threshold": _money(s.auto_approve_threshold),
        "last_run_at": s.last_run_at.isoformat() if s.last_run_at else None,
        "next_run_at": s.next_run_at.isoformat() if s.next_run_at else None,
    }


def _payout_json(p):
    return {
        "id": p.id,
        "salon_id": p.salon_id,
        "amount": _money(p.amount),
        "payout_method": p.payout_method,
        "bank_account_id": p.bank_account_id,
        "upi_id": p.upi_id,
        "status": p.status,
        "period_start": p.period_start.isoformat() if p.period_start else None,
        "period_end": p.period_end.isoformat() if p.period_end else None,
        "notes": p.notes,
        "reference": p.reference,
        "failure_reason": p.failure_reason,
        "processed_at": p.processed_at.isoformat() if p.processed_at else None,
        "completed_at": p.completed_at.isoformat() if p.completed_at else None,
        "created_at": p.created_at.isoformat(),
    }


# ---------- payout schedule ----------
@admin_bp.get("/payout-settings")
@require_roles("ADMIN")
def read_payout_settings():
    try:
        return jsonify(_settings_json(get_settings())), 200
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code


@admin_bp.put("/payout-settings")
@require_roles("ADMIN")
def write_payout_settings():
    data = request.get_json(silent=True) or {}
    try:
        settings = update_settings(data, admin_user_id=g.user.id)
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(_settings_json(settings)), 200


# ---------- payouts ----------
@admin_bp.get("/payouts")
@require_roles("ADMIN")
def list_payouts():
    status = request.args.get("status")
    salon_id = request.args.get("salon_id", type=int)

    q = SalonPayout.query
    if status:
        q = q.filter_by(status=status)
    if salon_id:
        q = q.filter_by(salon_id=salon_id)

    rows = q.order_by(SalonPayout.created_at.desc()).limit(200).all()
    return jsonify([_payout_json(p) for p in rows]), 200


@admin_bp.get("/salons/<int:salon_id>/balance")
@require_roles("ADMIN")
def salon_balance(salon_id: int):
    return jsonify(salon_id=salon_id, pending_balance=_money(pending_balance(salon_id))), 200


@admin_bp.post("/salons/<int:salon_id>/payouts")
@require_roles("ADMIN")
def manual_payout(salon_id: int):
    data = request.get_json(silent=True) or {}
    try:
        payout = create_manual_payout(salon_id, data.get("amount"), admin_user_id=g.user.id, notes=data.get("notes"))
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(_payout_json(payout)), 201


@admin_bp.post("/payouts/<int:payout_id>/approve")
@require_roles("ADMIN")
def approve(payout_id: int):
    try:
        payout = approve_payout(payout_id, admin_user_id=g.user.id)
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(_payout_json(payout)), 200


@admin_bp.post("/payouts/<int:payout_id>/complete")
@require_roles("ADMIN")
def complete(payout_id: int):
    data = request.get_json(silent=True) or {}
    reference = (data.get("reference") or "").strip() or None
    try:
        payout = complete_payout(payout_id, admin_user_id=g.user.id, reference=reference)
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(_payout_json(payout)), 200


@admin_bp.post("/payouts/<int:payout_id>/fail")
@require_roles("ADMIN")
def fail(payout_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None
    try:
        payout = fail_payout(payout_id, admin_user_id=g.user.id, reason=reason)
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(_payout_json(payout)), 200


# ---------- penalties ----------
@admin_bp.post("/penalties/<int:penalty_id>/waive")
@require_roles("ADMIN")
def waive(penalty_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None
    try:
        penalty = waive_penalty(penalty_id, admin_user_id=g.user.id, reason=reason)
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code
    return jsonify(id=penalty.id, is_waived=penalty.is_waived, waive_reason=penalty.waive_reason), 200


def _remittance_json(r):
    return {
        "id": r.id,
        "salon_id": r.salon_id,
        "payout_id": r.payout_id,
        "penalty_ids": r.penalty_ids,
        "total_amount": _money(r.total_amount),
        "note": r.note,
        "remitted_by": r.remitted_by,
        "created_at": r.created_at.isoformat(),
    }


@admin_bp.get("/penalties/remittances/pending")
@require_roles("ADMIN")
def pending_remittances():
    groups = outstanding_remittances_by_salon()
    return jsonify([
        {
            "salon_id": grp["salon_id"],
            "salon_name": grp["salon_name"],
            "pending_count": grp["pending_count"],
            "pending_amount": _money(grp["pending_amount"]),
            "penalties": [
                {
                    "id": p["id"],
                    "user_id": p["user_id"],
                    "penalty_amount": _money(p["penalty_amount"]),
                    "paid_at": p["paid_at"].isoformat() if p["paid_at"] else None,
                }
                for p in grp["penalties"]
            ],
        }
        for grp in groups
    ]), 200


@admin_bp.get("/penalties/remittances")
@require_roles("ADMIN")
def list_remittances():
    salon_id = request.args.get("salon_id", type=int)
    return jsonify([_remittance_json(r) for r in remittance_history(salon_id)]), 200


@admin_bp.post("/salons/<int:salon_id>/penalty-remittances")
@require_roles("ADMIN")
def remit(salon_id: int):
    data = request.get_json(silent=True) or {}
    note = (data.get("note") or "").strip() or None
    try:
        remittance = remit_penalties(salon_id, data.get("penalty_ids"), admin_user_id=g.user.id, note=note,
                                     payout_id=data.get("payout_id"))
    except PaymentError as exc:
        return jsonify(error=exc.message), exc.status_code

    count = len(remittance.penalty_ids)
    out = _remittance_json(remittance)
    out["message"] = f"Manually remitted {count} penalty/ies (₹{remittance.total_amount})"
    return jsonify(out), 200


# ---------- gateway audit ----------
@admin_bp.get("/webhook-logs")
@require_roles("ADMIN")
def list_webhook_logs():
    limit = request.args.get("limit", type=int) or 100
    limit = max(1, min(limit, 500))
    status = request.args.get("status")

    q = WebhookLog.query
    if status:
        q = q.filter_by(status=status)
    rows = q.order_by(WebhookLog.id.desc()).limit(limit).all()

    return jsonify([
        {
            "id": r.id,
            "event_type": r.event_type,
            "event_id": r.event_id,
            "status": r.status,
            "error_message": r.error_message,
            "payload": json.loads(r.payload_json) if r.payload_json else None,
            "created_at": r.created_at.isoformat(),
            "processed_at": r.processed_at.isoformat() if r.processed_at else None,
        }
        for r in rows
    ]), 200


@admin_bp.get("/ledger/unrecorded")
@require_roles("ADMIN")
def unrecorded_captures():
    rows = find_unrecorded_captures()
    return jsonify([
        {"booking_id": b.id, "payment_id": b.payment_id, "status": b.status}
        for b in rows
    ]), 200

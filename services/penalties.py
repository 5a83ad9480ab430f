import json
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from models import db
from models.booking import Booking
from models.payout import SalonPayout
from models.penalty import CancellationPenalty, SalonPenaltyRemittance
from models.salon import Salon
from services.errors import InvalidState, NotFound, ValidationError
from services.notifications import notify
from utils.audit import log_event

logger = logging.getLogger(__name__)


def _outstanding_query(user_id: int):
    return CancellationPenalty.query.filter(
        CancellationPenalty.user_id == user_id,
        CancellationPenalty.is_paid.is_(False),
        CancellationPenalty.is_waived.is_(False),
    )


def outstanding_penalty_total(user_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(CancellationPenalty.penalty_amount), 0))
        .filter(
            CancellationPenalty.user_id == user_id,
            CancellationPenalty.is_paid.is_(False),
            CancellationPenalty.is_waived.is_(False),
        )
        .scalar()
    )
    return Decimal(str(total))


def settle_outstanding_penalties(user_id: int, booking_id: int, now: datetime = None,
                                 collected_by_salon_id: int = None):
    """Mark every unpaid, non-waived penalty of ``user_id`` as paid.

    Any successful payment by the user settles them, whichever booking the
    penalty came from. Changes are left in the session for the caller to
    commit together with the booking update. ``collected_by_salon_id`` is
    set when the salon took the fee in cash and now owes it to the platform.
    """
    now = now or datetime.utcnow()
    penalties = _outstanding_query(user_id).all()
    for p in penalties:
        p.is_paid = True
        p.paid_at = now
        p.paid_booking_id = booking_id
        if collected_by_salon_id is not None:
            p.collected_by_salon_id = collected_by_salon_id

    if penalties:
        total = sum((Decimal(str(p.penalty_amount)) for p in penalties), Decimal("0"))
        logger.info("Settled %d penalties (%s) for user %s via booking %s", len(penalties), total, user_id, booking_id)
    return penalties


def waive_penalty(penalty_id: int, admin_user_id: int, reason: str = None) -> CancellationPenalty:
    penalty = db.session.get(CancellationPenalty, penalty_id)
    if not penalty:
        raise NotFound("Penalty not found")
    if penalty.is_paid:
        raise InvalidState("Penalty already paid")
    if penalty.is_waived:
        raise InvalidState("Penalty already waived")

    penalty.is_waived = True
    penalty.waived_at = datetime.utcnow()
    penalty.waived_by = admin_user_id
    penalty.waive_reason = reason
    db.session.commit()

    log_event("PENALTY_WAIVED", user_id=admin_user_id, entity="penalty", entity_id=penalty.id,
              metadata={"amount": penalty.penalty_amount, "reason": reason})

    notify(
        penalty.user_id,
        "Cancellation fee waived",
        f"Your cancellation fee of ₹{penalty.penalty_amount} has been waived."
        + (f" Reason: {reason}" if reason else ""),
        "penalty",
        link="/my-bookings",
    )
    return penalty


# ---------- cash collected at the salon, owed to the platform ----------

def collect_penalties_at_salon(booking_id: int, collector_user_id: int = None, owner_user_id: int = None):
    """Record that the salon took the customer's outstanding fees in cash.

    ``owner_user_id`` restricts the call to the owner of the booking's
    salon. The penalties become payable by that salon to the platform.
    """
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if owner_user_id is not None:
        salon = db.session.get(Salon, booking.salon_id)
        if salon is None or salon.owner_user_id != owner_user_id:
            raise NotFound("Booking not found")

    penalties = settle_outstanding_penalties(booking.user_id, booking.id, collected_by_salon_id=booking.salon_id)
    if not penalties:
        return []
    db.session.commit()

    log_event("PENALTIES_COLLECTED_AT_SALON", user_id=collector_user_id, entity="booking", entity_id=booking.id,
              metadata={"salon_id": booking.salon_id, "penalty_ids": [p.id for p in penalties]})
    return penalties


def _unremitted_query(salon_id: int = None):
    query = CancellationPenalty.query.filter(
        CancellationPenalty.collected_by_salon_id.isnot(None),
        CancellationPenalty.is_paid.is_(True),
        CancellationPenalty.is_waived.is_(False),
        CancellationPenalty.remitted_to_platform.is_(False),
    )
    if salon_id is not None:
        query = query.filter(CancellationPenalty.collected_by_salon_id == salon_id)
    return query


def outstanding_remittances_by_salon() -> list:
    """Cash-collected penalties not yet handed over, grouped per salon.

    Largest amount owed first.
    """
    groups = {}
    for p in _unremitted_query().order_by(CancellationPenalty.id.asc()).all():
        group = groups.get(p.collected_by_salon_id)
        if group is None:
            salon = db.session.get(Salon, p.collected_by_salon_id)
            group = groups[p.collected_by_salon_id] = {
                "salon_id": p.collected_by_salon_id,
                "salon_name": salon.name if salon else "Unknown",
                "pending_count": 0,
                "pending_amount": Decimal("0"),
                "penalties": [],
            }
        group["pending_count"] += 1
        group["pending_amount"] += Decimal(str(p.penalty_amount))
        group["penalties"].append({
            "id": p.id,
            "user_id": p.user_id,
            "penalty_amount": Decimal(str(p.penalty_amount)),
            "paid_at": p.paid_at,
        })
    return sorted(groups.values(), key=lambda g: g["pending_amount"], reverse=True)


def remit_penalties(salon_id: int, penalty_ids, admin_user_id: int, note: str = None,
                    payout_id: int = None) -> SalonPenaltyRemittance:
    """Mark the salon's cash-collected penalties as handed over to the platform.

    Every id must be a paid, unwaived penalty collected by ``salon_id`` and
    not remitted yet; otherwise nothing changes.
    """
    if not db.session.get(Salon, salon_id):
        raise NotFound("Salon not found")

    try:
        ids = sorted({int(i) for i in (penalty_ids or [])})
    except (TypeError, ValueError):
        raise ValidationError("penalty_ids must be a list of ids")
    if not ids:
        raise ValidationError("Select at least one penalty to remit")

    if payout_id is not None:
        try:
            payout_id = int(payout_id)
        except (TypeError, ValueError):
            raise ValidationError("payout_id must be an id")
        payout = db.session.get(SalonPayout, payout_id)
        if not payout or payout.salon_id != salon_id:
            raise NotFound("Payout not found")

    penalties = _unremitted_query(salon_id).filter(CancellationPenalty.id.in_(ids)).all()
    found = {p.id for p in penalties}
    missing = [i for i in ids if i not in found]
    if missing:
        raise InvalidState(f"Penalties not remittable for this salon: {missing}")

    now = datetime.utcnow()
    # guarded update: a concurrent remittance of the same rows matches fewer of them
    updated = (
        _unremitted_query(salon_id)
        .filter(CancellationPenalty.id.in_(ids))
        .update({"remitted_to_platform": True, "remitted_at": now}, synchronize_session=False)
    )
    if updated != len(ids):
        db.session.rollback()
        raise InvalidState("Penalties were remitted concurrently")

    total = sum((Decimal(str(p.penalty_amount)) for p in penalties), Decimal("0"))
    remittance = SalonPenaltyRemittance(
        salon_id=salon_id,
        payout_id=payout_id,
        total_amount=total,
        penalty_ids_json=json.dumps(ids),
        note=note,
        remitted_by=admin_user_id,
        created_at=now,
    )
    db.session.add(remittance)
    db.session.commit()

    logger.info("Salon %s remitted %d penalties (%s)", salon_id, len(ids), total)
    log_event("PENALTIES_REMITTED", user_id=admin_user_id, entity="salon", entity_id=salon_id,
              metadata={"remittance_id": remittance.id, "penalty_ids": ids, "total_amount": total, "note": note})
    return remittance


def remittance_history(salon_id: int = None, limit: int = 50):
    query = SalonPenaltyRemittance.query
    if salon_id is not None:
        query = query.filter(SalonPenaltyRemittance.salon_id == salon_id)
    return query.order_by(SalonPenaltyRemittance.created_at.desc(), SalonPenaltyRemittance.id.desc()).limit(limit).all()

from models import db
from models.user import Role
from models.payout import PayoutScheduleSettings

DEFAULT_ROLES = ["CUSTOMER", "SALON_OWNER", "ADMIN", "SUPER_ADMIN"]

def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()

def seed_payout_settings():
    # the payout engine expects exactly one settings row; created disabled
    if PayoutScheduleSettings.query.first() is None:
        db.session.add(PayoutScheduleSettings(is_enabled=False))
        db.session.commit()

from .health import health_bp
from .auth import auth_bp
from .admin import admin_bp
from .payments import payments_bp
from .payouts import payouts_bp
from .webhooks import webhook_bp
from .salons import salons_bp

from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .salon import Salon, SalonBankAccount
from .booking import Booking, BookingStatus
from .payment import Payment
from .penalty import CancellationPenalty, SalonPenaltyRemittance
from .payout import SalonPayout, PayoutScheduleSettings, PayoutStatus
from .webhook_log import WebhookLog
from .notification import Notification

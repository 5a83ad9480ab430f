from datetime import datetime
from models.db import db

class WebhookLog(db.Model):
    __tablename__ = "webhook_logs"

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(80), nullable=False, index=True)
    event_id = db.Column(db.String(80), nullable=True, index=True)
    payload_json = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="received")  # received, processed, failed
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    processed_at = db.Column(db.DateTime, nullable=True)

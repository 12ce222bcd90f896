import json

from models.db import db
from utils.clock import utcnow


class AuditLog(db.Model):
    """Who did what to which booking, as seen at the HTTP edge."""
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.String(64), nullable=True)  # null for Stripe and scheduler
    action = db.Column(db.String(80), nullable=False)   # e.g. BOOKING_HOLD, PAYMENT_FAILED
    booking_id = db.Column(db.String(36), nullable=True, index=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    detail_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def detail(self) -> dict:
        return json.loads(self.detail_json) if self.detail_json else {}

    def to_dict(self):
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "booking_id": self.booking_id,
            "detail": self.detail,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

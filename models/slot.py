import uuid

from models.db import db
from utils.clock import utcnow

SLOT_AVAILABLE = "available"
SLOT_HELD = "held"
SLOT_CONFIRMED = "confirmed"


class BookingSlot(db.Model):
    __tablename__ = "booking_slots"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    responder_id = db.Column(db.String(64), nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)
    timezone = db.Column(db.String(100), nullable=False, default="UTC")
    duration_minutes = db.Column(db.Integer, nullable=False)

    price_cents = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit
    is_free = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(20), nullable=False, default=SLOT_AVAILABLE)
    # status values: available, held, confirmed
    held_until = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("responder_id", "start_time", "end_time", name="uq_responder_timeslot"),
        db.Index("ix_slots_responder_status", "responder_id", "status"),
        db.CheckConstraint("end_time > start_time", name="ck_slot_time_range"),
        db.CheckConstraint("price_cents >= 0", name="ck_slot_price_non_negative"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "responder_id": self.responder_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "timezone": self.timezone,
            "duration_minutes": self.duration_minutes,
            "price_cents": self.price_cents,
            "is_free": self.is_free,
            "status": self.status,
            "held_until": self.held_until.isoformat() if self.held_until else None,
        }

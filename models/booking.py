import uuid

from models.db import db
from utils.clock import utcnow


def _iso(value):
    return value.isoformat() if value else None


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    requester_id = db.Column(db.String(64), nullable=False, index=True)
    responder_id = db.Column(db.String(64), nullable=False, index=True)
    slot_id = db.Column(db.String(36), db.ForeignKey("booking_slots.id"), nullable=True, index=True)
    session_id = db.Column(db.String(64), nullable=True)

    scheduled_start = db.Column(db.DateTime, nullable=False, index=True)
    scheduled_end = db.Column(db.DateTime, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    timezone = db.Column(db.String(100), nullable=False, default="UTC")

    # money in minor units (cents)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    platform_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    responder_payout_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="held")
    # status values: held, awaiting_payment, confirmed, canceled, completed, no_show, failed, expired

    # opaque reference handed to us by the payment processor
    payment_intent_id = db.Column(db.String(255), nullable=True, index=True)

    canceled_at = db.Column(db.DateTime, nullable=True)
    canceled_by = db.Column(db.String(64), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    held_until = db.Column(db.DateTime, nullable=True)
    hold_token = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    slot = db.relationship("BookingSlot")

    __table_args__ = (
        # Idempotency: one booking per hold token, ever
        db.UniqueConstraint("hold_token", name="uq_booking_hold_token"),
        db.Index("ix_bookings_status_held_until", "status", "held_until"),
        db.CheckConstraint("price_cents >= 0", name="ck_booking_price_non_negative"),
    )

    def to_dict(self, legacy: bool = False):
        out = {
            "id": self.id,
            "requester_id": self.requester_id,
            "responder_id": self.responder_id,
            "slot_id": self.slot_id,
            "session_id": self.session_id,
            "scheduled_start": _iso(self.scheduled_start),
            "scheduled_end": _iso(self.scheduled_end),
            "duration_minutes": self.duration_minutes,
            "timezone": self.timezone,
            "price_cents": self.price_cents,
            "currency": self.currency,
            "platform_fee_cents": self.platform_fee_cents,
            "responder_payout_cents": self.responder_payout_cents,
            "status": self.status,
            "payment_intent_id": self.payment_intent_id,
            "canceled_at": _iso(self.canceled_at),
            "canceled_by": self.canceled_by,
            "cancellation_reason": self.cancellation_reason,
            "held_until": _iso(self.held_until),
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if legacy:
            # older clients still read the user/expert column names
            out["user_id"] = self.requester_id
            out["expert_id"] = self.responder_id
        return out

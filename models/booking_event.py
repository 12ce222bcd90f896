import json

from models.db import db
from utils.clock import utcnow


class BookingEvent(db.Model):
    """
    Outbox row. Written in the same transaction as the booking change it
    describes, marked published once the event bus accepted it.
    """
    __tablename__ = "booking_events"

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(40), nullable=False)  # e.g. booking:held
    booking_id = db.Column(db.String(36), nullable=False, index=True)
    payload_json = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    published_at = db.Column(db.DateTime, nullable=True, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)

    @property
    def payload(self) -> dict:
        return json.loads(self.payload_json)

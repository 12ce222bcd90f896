"""
Booking events: outbox staging, post-commit delivery, replay.

Events are written to ``booking_events`` inside the transaction that
produced them. After commit the relay hands them to the publisher and
stamps ``published_at``. A publisher failure is logged and left for
``replay``; it never surfaces to the caller of the booking operation.
"""
import json
import logging
from datetime import datetime

import redis
from sqlalchemy import select

from models.booking_event import BookingEvent

logger = logging.getLogger(__name__)

HELD = "booking:held"
AWAITING_PAYMENT = "booking:awaiting_payment"
CONFIRMED = "booking:confirmed"
CANCELED = "booking:canceled"
FAILED = "booking:failed"
EXPIRED = "booking:expired"
COMPLETED = "booking:completed"
NO_SHOW = "booking:no_show"


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


def stage_event(session, event_type: str, booking_id: str, payload: dict, now=None) -> BookingEvent:
    """Add an outbox row to the current transaction (no flush, no commit)."""
    row = BookingEvent(
        event_type=event_type,
        booking_id=booking_id,
        payload_json=json.dumps(payload, default=_json_default),
    )
    if now is not None:
        row.created_at = now
    session.add(row)
    return row


class LoggingEventPublisher:
    def publish(self, event_type: str, payload: dict) -> None:
        logger.info("Event %s %s", event_type, json.dumps(payload))


class RedisEventPublisher:
    def __init__(self, client, channel: str):
        self.client = client
        self.channel = channel

    @classmethod
    def from_url(cls, url: str, channel: str):
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        return cls(client, channel)

    def publish(self, event_type: str, payload: dict) -> None:
        message = json.dumps({"type": event_type, "data": payload})
        self.client.publish(self.channel, message)


class OutboxRelay:
    def __init__(self, session, publisher, clock):
        self.session = session
        self.publisher = publisher
        self.clock = clock

    def deliver(self, events) -> int:
        """
        Publish already-committed outbox rows. Returns how many went out.
        """
        if not events:
            return 0

        delivered = 0
        for event in events:
            try:
                self.publisher.publish(event.event_type, event.payload)
            except Exception as exc:
                event.attempts = (event.attempts or 0) + 1
                event.last_error = str(exc)[:255]
                logger.warning(
                    "Event publish failed; kept for replay event_id=%s type=%s booking_id=%s: %s",
                    event.id, event.event_type, event.booking_id, exc,
                )
                continue
            event.attempts = (event.attempts or 0) + 1
            event.published_at = self.clock.now()
            event.last_error = None
            delivered += 1

        try:
            self.session.commit()
        except Exception as exc:
            # Bookkeeping only: worst case the event is published again on replay
            self.session.rollback()
            logger.warning("Could not record event delivery state: %s", exc)
        return delivered

    def pending(self, limit: int = 100):
        stmt = (
            select(BookingEvent)
            .where(BookingEvent.published_at.is_(None))
            .order_by(BookingEvent.id.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def replay(self, limit: int = 100) -> int:
        events = self.pending(limit)
        if not events:
            return 0
        delivered = self.deliver(events)
        logger.info("Outbox replay delivered=%s pending=%s", delivered, len(events) - delivered)
        return delivered

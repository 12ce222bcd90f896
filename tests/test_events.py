import json
from datetime import timedelta

from models import db
from models.booking_event import BookingEvent
from services.events import RedisEventPublisher, stage_event
from tests.helpers import hold_slot, reload_slot


class FakeRedis:
    def __init__(self):
        self.messages = []

    def publish(self, channel, message):
        self.messages.append((channel, message))
        return 1


def test_events_are_recorded_as_published(ledger, make_slot, publisher):
    booking = hold_slot(ledger, make_slot())

    rows = db.session.query(BookingEvent).all()
    assert len(rows) == 1
    assert rows[0].event_type == "booking:held"
    assert rows[0].booking_id == booking.id
    assert rows[0].published_at is not None
    assert rows[0].attempts == 1
    assert ledger.relay.pending() == []


def test_publish_failure_does_not_undo_the_hold(ledger, make_slot, publisher):
    publisher.failing = True
    slot = make_slot()

    booking = hold_slot(ledger, slot)

    assert booking.status == "held"
    assert reload_slot(slot.id).status == "held"
    pending = ledger.relay.pending()
    assert [e.booking_id for e in pending] == [booking.id]
    assert pending[0].attempts == 1
    assert "event bus unavailable" in pending[0].last_error
    assert publisher.events == []


def test_replay_delivers_pending_events(ledger, make_slot, clock, publisher):
    publisher.failing = True
    booking = hold_slot(ledger, make_slot())
    ledger.confirm(booking.id)
    assert len(ledger.relay.pending()) == 2

    # still down: attempts keep counting
    assert ledger.relay.replay() == 0
    assert {e.attempts for e in ledger.relay.pending()} == {2}

    publisher.failing = False
    clock.advance(timedelta(minutes=1))
    assert ledger.relay.replay() == 2

    assert [kind for kind, _ in publisher.events] == ["booking:held", "booking:confirmed"]
    assert ledger.relay.pending() == []
    assert ledger.relay.replay() == 0


def test_replay_respects_limit(ledger, make_slot, clock, publisher):
    publisher.failing = True
    base = clock.now() + timedelta(days=1)
    for i in range(3):
        hold_slot(ledger, make_slot(start=base + timedelta(hours=i)), token=f"t{i}")

    publisher.failing = False
    assert ledger.relay.replay(limit=2) == 2
    assert len(ledger.relay.pending()) == 1


def test_staged_payload_serializes_datetimes(app, clock):
    row = stage_event(db.session, "booking:held", "b-1", {"heldUntil": clock.now()}, now=clock.now())
    db.session.commit()

    assert row.payload == {"heldUntil": clock.now().isoformat()}
    assert row.created_at == clock.now()


def test_redis_publisher_wraps_type_and_data():
    client = FakeRedis()
    publisher = RedisEventPublisher(client, "booking-events")

    publisher.publish("booking:held", {"bookingId": "b-1"})

    channel, message = client.messages[0]
    assert channel == "booking-events"
    assert json.loads(message) == {"type": "booking:held", "data": {"bookingId": "b-1"}}


def test_replay_job_runs_inside_app_context(app, make_slot, publisher):
    from app import run_outbox_replay_job
    from utils.ledger import get_ledger

    publisher.failing = True
    hold_slot(get_ledger(app), make_slot())
    publisher.failing = False

    run_outbox_replay_job(app)

    assert [kind for kind, _ in publisher.events] == ["booking:held"]

"""Shared fakes and helpers for the booking tests."""
import threading
from datetime import datetime, timedelta

from models import db
from models.slot import BookingSlot

START = datetime(2026, 3, 2, 9, 0, 0)
RESPONDER = "expert-1"
REQUESTER = "user-1"


class RecordingPublisher:
    """Collects published events; flip ``failing`` to simulate a dead bus."""

    def __init__(self):
        self.events = []
        self.failing = False

    def publish(self, event_type, payload):
        if self.failing:
            raise ConnectionError("event bus unavailable")
        self.events.append((event_type, payload))

    def of_type(self, event_type):
        return [payload for kind, payload in self.events if kind == event_type]


def hold_slot(ledger, slot, token="tok-1", requester_id=REQUESTER, **overrides):
    params = dict(
        requester_id=requester_id,
        responder_id=slot.responder_id,
        slot_id=slot.id,
        scheduled_start=slot.start_time,
        scheduled_end=slot.end_time,
        duration_minutes=slot.duration_minutes,
        timezone="UTC",
        price_cents=slot.price_cents,
        hold_token=token,
    )
    params.update(overrides)
    return ledger.create_hold(**params)


def add_slot(start, responder_id=RESPONDER, minutes=30, price_cents=5000):
    slot = BookingSlot(
        responder_id=responder_id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        timezone="UTC",
        duration_minutes=minutes,
        price_cents=price_cents,
        is_free=price_cents == 0,
    )
    db.session.add(slot)
    db.session.commit()
    return slot


def reload_slot(slot_id):
    db.session.expire_all()
    return db.session.get(BookingSlot, slot_id)


def run_together(app, count, job):
    """
    Start ``count`` threads that call ``job(index)`` at the same moment, each
    inside its own app context and session. Returns (index, outcome) pairs;
    an exception is returned as the outcome instead of being raised.
    """
    barrier = threading.Barrier(count)
    results = []
    lock = threading.Lock()

    def worker(index):
        with app.app_context():
            try:
                prepare = job(index)
                barrier.wait()
                outcome = prepare()
            except Exception as exc:
                outcome = exc
            finally:
                db.session.remove()
        with lock:
            results.append((index, outcome))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results

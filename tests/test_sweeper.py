from datetime import timedelta

from models import db
from models.booking import Booking
from models.slot import BookingSlot
from tests.helpers import add_slot, hold_slot, reload_slot, run_together
from utils.ledger import get_ledger


def test_stale_hold_is_expired_and_slot_released(ledger, make_slot, clock, publisher):
    slot = make_slot()
    booking = hold_slot(ledger, slot)

    clock.advance(timedelta(minutes=16))
    assert ledger.sweep_expired_holds() == 1

    booking = ledger.get_by_id(booking.id)
    assert booking.status == "expired"
    assert booking.held_until is None
    fresh = reload_slot(slot.id)
    assert fresh.status == "available"
    assert fresh.held_until is None
    assert [p["bookingId"] for p in publisher.of_type("booking:expired")] == [booking.id]


def test_hold_at_deadline_is_not_swept(ledger, make_slot, clock):
    slot = make_slot()
    booking = hold_slot(ledger, slot)

    clock.advance(timedelta(minutes=15))
    assert ledger.sweep_expired_holds() == 0
    assert ledger.get_by_id(booking.id).status == "held"


def test_awaiting_payment_gets_longer_window(ledger, make_slot, clock):
    slot = make_slot()
    booking = hold_slot(ledger, slot)
    ledger.mark_awaiting_payment(booking.id, "pi_123")

    clock.advance(timedelta(minutes=16))
    assert ledger.sweep_expired_holds() == 0

    clock.advance(timedelta(minutes=15))
    assert ledger.sweep_expired_holds() == 1
    assert ledger.get_by_id(booking.id).status == "expired"
    assert reload_slot(slot.id).status == "available"


def test_confirmed_bookings_are_left_alone(ledger, make_slot, clock):
    slot = make_slot()
    booking = hold_slot(ledger, slot)
    ledger.confirm(booking.id)

    clock.advance(timedelta(hours=2))
    assert ledger.sweep_expired_holds() == 0
    assert ledger.get_by_id(booking.id).status == "confirmed"
    assert reload_slot(slot.id).status == "confirmed"


def test_second_sweep_finds_nothing(ledger, make_slot, clock, publisher):
    base = clock.now() + timedelta(days=1)
    hold_slot(ledger, make_slot(start=base), token="t1")
    hold_slot(ledger, make_slot(start=base + timedelta(hours=1)), token="t2")

    clock.advance(timedelta(minutes=20))
    assert ledger.sweep_expired_holds() == 2
    assert ledger.sweep_expired_holds() == 0
    assert len(publisher.of_type("booking:expired")) == 2


def test_expired_slot_can_be_held_again(ledger, make_slot, clock):
    slot = make_slot()
    first = hold_slot(ledger, slot, token="t1")

    clock.advance(timedelta(minutes=16))
    ledger.sweep_expired_holds()

    second = hold_slot(ledger, slot, token="t2", requester_id="user-2")
    assert second.id != first.id
    assert second.status == "held"


def test_sweep_job_runs_inside_app_context(app, make_slot, clock):
    from app import run_sweep_job

    slot = make_slot()
    booking = hold_slot(get_ledger(app), slot)
    clock.advance(timedelta(minutes=16))

    assert run_sweep_job(app) == 1
    assert get_ledger(app).get_by_id(booking.id).status == "expired"


def test_concurrent_sweepers_expire_each_hold_once(file_app, clock, publisher):
    holds = 6
    with file_app.app_context():
        ledger = get_ledger(file_app)
        base = clock.now() + timedelta(days=1)
        booking_ids = [
            hold_slot(ledger, add_slot(base + timedelta(hours=i)), token=f"t{i}").id
            for i in range(holds)
        ]
        db.session.remove()

    clock.advance(timedelta(minutes=20))

    def job(index):
        sweeper = get_ledger(file_app)
        return sweeper.sweep_expired_holds

    counts = [outcome for _, outcome in run_together(file_app, 2, job)]

    assert all(isinstance(c, int) for c in counts), counts
    assert sum(counts) == holds
    expired = sorted(p["bookingId"] for p in publisher.of_type("booking:expired"))
    assert expired == sorted(booking_ids)

    with file_app.app_context():
        statuses = {b.status for b in db.session.query(Booking).all()}
        assert statuses == {"expired"}
        assert {s.status for s in db.session.query(BookingSlot).all()} == {"available"}

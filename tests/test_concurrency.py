from datetime import timedelta

import pytest

from models import db
from models.booking import Booking
from models.slot import BookingSlot
from services.errors import ConflictError
from tests.helpers import START, add_slot, hold_slot, run_together
from utils.ledger import get_ledger

WORKERS = 8


@pytest.fixture
def race_slot_id(file_app):
    with file_app.app_context():
        slot_id = add_slot(START + timedelta(days=1)).id
        db.session.remove()
    return slot_id


def _hold_race(app, slot_id, tokens):
    def job(index):
        # load everything before the barrier so the threads only race the lock
        slot = db.session.get(BookingSlot, slot_id)
        ledger = get_ledger(app)
        return lambda: hold_slot(ledger, slot, token=tokens[index], requester_id=f"user-{index}").id

    return [outcome for _, outcome in run_together(app, len(tokens), job)]


def test_one_winner_among_distinct_tokens(file_app, race_slot_id):
    outcomes = _hold_race(file_app, race_slot_id, [f"tok-{i}" for i in range(WORKERS)])

    winners = [o for o in outcomes if isinstance(o, str)]
    losers = [o for o in outcomes if isinstance(o, ConflictError)]
    assert len(winners) == 1
    assert len(losers) == WORKERS - 1

    with file_app.app_context():
        assert db.session.query(Booking).count() == 1
        assert db.session.get(BookingSlot, race_slot_id).status == "held"


def test_same_token_resolves_to_one_booking(file_app, race_slot_id):
    outcomes = _hold_race(file_app, race_slot_id, ["tok-shared"] * WORKERS)

    assert [o for o in outcomes if not isinstance(o, str)] == []
    assert len(set(outcomes)) == 1
    with file_app.app_context():
        assert db.session.query(Booking).count() == 1

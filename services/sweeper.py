import logging

from sqlalchemy import select, update

from models.booking import Booking
from services import events
from services.events import stage_event
from services.transitions import EXPIRABLE_STATUSES, EXPIRED, ensure_transition
from services.tx import transaction

logger = logging.getLogger(__name__)


class HoldSweeper:
    """
    Reclaims holds nobody finished paying for.

    One transaction per run. Rows are locked with SKIP LOCKED, so a second
    sweeper running at the same time passes over bookings the first one
    is already expiring instead of waiting on them.
    """

    def __init__(self, session, slots, relay, clock):
        self.session = session
        self.slots = slots
        self.relay = relay
        self.clock = clock

    def sweep(self) -> int:
        staged = []
        with transaction(self.session):
            now = self.clock.now()
            stmt = (
                select(Booking)
                .where(
                    Booking.status.in_(sorted(EXPIRABLE_STATUSES)),
                    Booking.held_until.is_not(None),
                    Booking.held_until < now,
                )
                .order_by(Booking.held_until.asc())
                .with_for_update(skip_locked=True)
                .execution_options(populate_existing=True)
            )
            candidates = list(self.session.scalars(stmt))

            for booking in candidates:
                ensure_transition(booking.status, EXPIRED)
                if not self._claim(booking, now):
                    # another sweeper (or a payment outcome) got here first
                    continue
                if booking.slot_id:
                    self.slots.release(booking.slot_id)
                staged.append(stage_event(self.session, events.EXPIRED, booking.id, {
                    "bookingId": booking.id,
                    "requesterId": booking.requester_id,
                    "responderId": booking.responder_id,
                }, now=now))

        if staged:
            logger.info("Released expired holds count=%s", len(staged))
        self.relay.deliver(staged)
        return len(staged)

    def _claim(self, booking, now) -> bool:
        # Guarded write: re-checks status and deadline so that databases
        # without row locks still let only one writer expire the booking
        result = self.session.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.status == booking.status,
                Booking.held_until < now,
            )
            .values(status=EXPIRED, held_until=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        self.session.expire(booking)
        return True

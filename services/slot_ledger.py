import logging
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.orm.util import identity_key

from models.slot import BookingSlot, SLOT_AVAILABLE, SLOT_CONFIRMED, SLOT_HELD
from services.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


class SlotLedger:
    """
    Availability state of responder slots.

    Mutations never commit: they run inside whatever transaction the
    booking ledger opened, so a failed booking step takes the slot change
    down with it.
    """

    def __init__(self, session, clock):
        self.session = session
        self.clock = clock

    def get(self, slot_id: str) -> BookingSlot:
        slot = self.session.get(BookingSlot, slot_id)
        if slot is None:
            raise NotFoundError("Slot not found", slot_id=slot_id)
        return slot

    def list_available(self, responder_id: str, range_start, range_end):
        stmt = (
            select(BookingSlot)
            .where(
                BookingSlot.responder_id == responder_id,
                BookingSlot.status == SLOT_AVAILABLE,
                BookingSlot.start_time >= range_start,
                BookingSlot.start_time < range_end,
            )
            .order_by(BookingSlot.start_time.asc())
        )
        return list(self.session.scalars(stmt))

    def lock(self, slot_id: str, hold_minutes: int) -> None:
        now = self.clock.now()
        held_until = now + timedelta(minutes=hold_minutes)

        # Guarded update: only one writer can see the row as available.
        # The loser of a race matches zero rows.
        result = self.session.execute(
            update(BookingSlot)
            .where(BookingSlot.id == slot_id, BookingSlot.status == SLOT_AVAILABLE)
            .values(status=SLOT_HELD, held_until=held_until, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if self.session.get(BookingSlot, slot_id) is None:
                raise NotFoundError("Slot not found", slot_id=slot_id)
            raise ConflictError("Slot is no longer available", slot_id=slot_id)

        self._expire(slot_id)
        logger.info("Slot locked slot_id=%s held_until=%s", slot_id, held_until.isoformat())

    def extend(self, slot_id: str, held_until) -> None:
        self.session.execute(
            update(BookingSlot)
            .where(BookingSlot.id == slot_id, BookingSlot.status == SLOT_HELD)
            .values(held_until=held_until, updated_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        self._expire(slot_id)

    def release(self, slot_id: str) -> None:
        # Unconditional: releasing an available slot is a no-op write
        self.session.execute(
            update(BookingSlot)
            .where(BookingSlot.id == slot_id)
            .values(status=SLOT_AVAILABLE, held_until=None, updated_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        self._expire(slot_id)
        logger.info("Slot released slot_id=%s", slot_id)

    def confirm(self, slot_id: str) -> None:
        result = self.session.execute(
            update(BookingSlot)
            .where(BookingSlot.id == slot_id, BookingSlot.status == SLOT_HELD)
            .values(status=SLOT_CONFIRMED, held_until=None, updated_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError("Slot is not held and cannot be confirmed", slot_id=slot_id)
        self._expire(slot_id)

    def _expire(self, slot_id: str) -> None:
        # Drop any identity-map copy so later reads see the row we just wrote
        slot = self.session.identity_map.get(identity_key(BookingSlot, slot_id))
        if slot is not None:
            self.session.expire(slot)

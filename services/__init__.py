from .errors import (
    BookingError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .booking_ledger import BookingLedger
from .slot_ledger import SlotLedger
from .sweeper import HoldSweeper
from .events import LoggingEventPublisher, OutboxRelay, RedisEventPublisher

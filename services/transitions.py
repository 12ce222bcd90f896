"""
Booking lifecycle table. Every status write in the ledger goes through
``ensure_transition`` first.
"""
from services.errors import InvalidTransitionError

HELD = "held"
AWAITING_PAYMENT = "awaiting_payment"
CONFIRMED = "confirmed"
CANCELED = "canceled"
COMPLETED = "completed"
NO_SHOW = "no_show"
FAILED = "failed"
EXPIRED = "expired"

BOOKING_TRANSITIONS = {
    HELD: frozenset({AWAITING_PAYMENT, CONFIRMED, EXPIRED, FAILED}),
    AWAITING_PAYMENT: frozenset({CONFIRMED, FAILED, EXPIRED}),
    CONFIRMED: frozenset({CANCELED, COMPLETED, NO_SHOW}),
    CANCELED: frozenset(),
    COMPLETED: frozenset(),
    NO_SHOW: frozenset(),
    FAILED: frozenset(),
    EXPIRED: frozenset(),
}

BOOKING_STATUSES = frozenset(BOOKING_TRANSITIONS)
TERMINAL_STATUSES = frozenset(s for s, targets in BOOKING_TRANSITIONS.items() if not targets)

# Cancellation has its own allow-list on top of the table
CANCELLABLE_STATUSES = frozenset({HELD, AWAITING_PAYMENT, CONFIRMED})

# Statuses the sweeper is allowed to reclaim
EXPIRABLE_STATUSES = frozenset({HELD, AWAITING_PAYMENT})


def can_transition(current: str, target: str) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, ())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES

"""
Booking ledger: holds, payment-gated confirmation, cancellation, failure.

Every mutation follows the same shape:

    open transaction -> lock booking row -> check transition -> write
    booking + slot -> stage outbox event -> commit -> deliver event

so an error at any step leaves nothing behind, and nothing is announced
before it is durable.
"""
import logging
import re
from datetime import timedelta

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from models.booking import Booking
from services import events
from services.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from services.events import OutboxRelay, stage_event
from services.slot_ledger import SlotLedger
from services.sweeper import HoldSweeper
from services.transitions import (
    AWAITING_PAYMENT,
    BOOKING_STATUSES,
    CANCELED,
    CANCELLABLE_STATUSES,
    COMPLETED,
    CONFIRMED,
    FAILED,
    HELD,
    NO_SHOW,
    ensure_transition,
)
from services.tx import transaction

logger = logging.getLogger(__name__)

DEFAULT_HOLD_MINUTES = 15
DEFAULT_PAYMENT_HOLD_MINUTES = 30
MIN_DURATION_MINUTES = 15
DEFAULT_FAIL_REASON = "Payment failed"

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class BookingLedger:
    def __init__(
        self,
        session,
        clock,
        publisher,
        hold_minutes: int = DEFAULT_HOLD_MINUTES,
        payment_hold_minutes: int = DEFAULT_PAYMENT_HOLD_MINUTES,
        default_currency: str = "USD",
    ):
        self.session = session
        self.clock = clock
        self.hold_minutes = hold_minutes
        self.payment_hold_minutes = payment_hold_minutes
        self.default_currency = default_currency
        self.slots = SlotLedger(session, clock)
        self.relay = OutboxRelay(session, publisher, clock)
        self.sweeper = HoldSweeper(session, self.slots, self.relay, clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_available_slots(self, responder_id: str, range_start, range_end):
        if not responder_id:
            raise ValidationError("responder_id required")
        if range_start is None or range_end is None:
            raise ValidationError("start and end are required")
        if range_end <= range_start:
            raise ValidationError("end must be after start")
        return self.slots.list_available(responder_id, range_start, range_end)

    def get_by_id(self, booking_id: str) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        return booking

    def list_for_user(self, user_id: str, statuses=None):
        stmt = select(Booking).where(
            or_(Booking.requester_id == user_id, Booking.responder_id == user_id)
        )
        if statuses:
            unknown = sorted(set(statuses) - BOOKING_STATUSES)
            if unknown:
                raise ValidationError(f"Unknown booking status: {', '.join(unknown)}")
            stmt = stmt.where(Booking.status.in_(list(statuses)))
        stmt = stmt.order_by(Booking.scheduled_start.desc())
        return list(self.session.scalars(stmt))

    def list_upcoming(self, user_id: str):
        stmt = (
            select(Booking)
            .where(
                or_(Booking.requester_id == user_id, Booking.responder_id == user_id),
                Booking.status == CONFIRMED,
                Booking.scheduled_start > self.clock.now(),
            )
            .order_by(Booking.scheduled_start.asc())
        )
        return list(self.session.scalars(stmt))

    # ------------------------------------------------------------------
    # Hold
    # ------------------------------------------------------------------

    def create_hold(
        self,
        requester_id: str,
        responder_id: str,
        slot_id: str,
        scheduled_start,
        scheduled_end,
        duration_minutes: int,
        timezone: str,
        price_cents: int,
        hold_token: str,
        currency: str = None,
        notes: str = None,
        platform_fee_cents: int = 0,
        responder_payout_cents: int = 0,
    ) -> Booking:
        currency = (currency or self.default_currency).upper()
        self._validate_hold(
            requester_id, responder_id, slot_id, scheduled_start, scheduled_end,
            duration_minutes, price_cents, hold_token, currency,
            platform_fee_cents, responder_payout_cents,
        )

        existing = self._find_by_token(hold_token)
        if existing is not None:
            logger.info("Hold token replayed hold_token=%s booking_id=%s", hold_token, existing.id)
            return existing

        try:
            with transaction(self.session):
                self.slots.lock(slot_id, self.hold_minutes)
                slot = self.slots.get(slot_id)
                if slot.responder_id != responder_id:
                    raise ValidationError("Slot does not belong to this responder", slot_id=slot_id)
                # Price and schedule come from the slot; the request only restates them
                if price_cents != slot.price_cents:
                    raise ValidationError("price_cents does not match the slot", slot_id=slot_id)
                if scheduled_start != slot.start_time or scheduled_end != slot.end_time:
                    raise ValidationError("Scheduled time does not match the slot", slot_id=slot_id)

                now = self.clock.now()
                booking = Booking(
                    requester_id=requester_id,
                    responder_id=responder_id,
                    slot_id=slot_id,
                    scheduled_start=scheduled_start,
                    scheduled_end=scheduled_end,
                    duration_minutes=duration_minutes,
                    timezone=timezone or "UTC",
                    price_cents=price_cents,
                    currency=currency,
                    platform_fee_cents=platform_fee_cents,
                    responder_payout_cents=responder_payout_cents,
                    status=HELD,
                    held_until=now + timedelta(minutes=self.hold_minutes),
                    hold_token=hold_token,
                    notes=notes,
                    created_at=now,
                    updated_at=now,
                )
                self.session.add(booking)
                self.session.flush()

                event = stage_event(self.session, events.HELD, booking.id, {
                    "bookingId": booking.id,
                    "slotId": slot_id,
                    "responderId": responder_id,
                    "requesterId": requester_id,
                    "heldUntil": booking.held_until,
                }, now=now)
        except (ConflictError, IntegrityError):
            # The same request retried concurrently: the other copy won the
            # slot (Conflict) or the token (IntegrityError). Hand back its booking.
            existing = self._find_by_token(hold_token)
            if existing is not None:
                logger.info("Hold token raced hold_token=%s booking_id=%s", hold_token, existing.id)
                return existing
            logger.info("Hold rejected, slot taken slot_id=%s requester_id=%s", slot_id, requester_id)
            raise

        logger.info(
            "Booking hold created booking_id=%s requester_id=%s responder_id=%s price_cents=%s",
            booking.id, requester_id, responder_id, price_cents,
        )
        self.relay.deliver([event])
        return booking

    def mark_awaiting_payment(self, booking_id: str, payment_intent_id: str) -> Booking:
        if not payment_intent_id:
            raise ValidationError("payment_intent_id required")

        with transaction(self.session):
            booking = self._lock_booking(booking_id)
            ensure_transition(booking.status, AWAITING_PAYMENT)

            now = self.clock.now()
            self.ensure_hold_active(booking, AWAITING_PAYMENT, now)
            booking.status = AWAITING_PAYMENT
            booking.payment_intent_id = payment_intent_id
            # Payment UIs are slow; give the requester a longer window
            booking.held_until = now + timedelta(minutes=self.payment_hold_minutes)
            booking.updated_at = now
            if booking.slot_id:
                self.slots.extend(booking.slot_id, booking.held_until)

            event = stage_event(self.session, events.AWAITING_PAYMENT, booking.id, {
                "bookingId": booking.id,
                "paymentIntentId": payment_intent_id,
            }, now=now)

        logger.info("Booking awaiting payment booking_id=%s payment_intent_id=%s", booking_id, payment_intent_id)
        self.relay.deliver([event])
        return booking

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def confirm(self, booking_id: str, payment_intent_id: str = None, session_id: str = None) -> Booking:
        with transaction(self.session):
            booking = self._lock_booking(booking_id)
            ensure_transition(booking.status, CONFIRMED)

            if payment_intent_id and booking.payment_intent_id and booking.payment_intent_id != payment_intent_id:
                raise ValidationError(
                    "Payment does not belong to this booking",
                    booking_id=booking_id,
                    payment_intent_id=payment_intent_id,
                )

            now = self.clock.now()
            booking.status = CONFIRMED
            booking.held_until = None
            booking.session_id = session_id
            if payment_intent_id:
                booking.payment_intent_id = payment_intent_id
            booking.updated_at = now
            if booking.slot_id:
                self.slots.confirm(booking.slot_id)

            event = stage_event(self.session, events.CONFIRMED, booking.id, {
                "bookingId": booking.id,
                "requesterId": booking.requester_id,
                "responderId": booking.responder_id,
                "sessionId": session_id,
                "scheduledStart": booking.scheduled_start,
            }, now=now)

        logger.info(
            "Booking confirmed booking_id=%s payment_intent_id=%s session_id=%s",
            booking_id, payment_intent_id, session_id,
        )
        self.relay.deliver([event])
        return booking

    def cancel(self, booking_id: str, canceled_by: str, reason: str = None) -> Booking:
        if not canceled_by:
            raise ValidationError("canceled_by required")

        with transaction(self.session):
            booking = self._lock_booking(booking_id)
            previous = booking.status
            if previous not in CANCELLABLE_STATUSES:
                raise InvalidTransitionError(
                    previous, CANCELED, f"Cannot cancel booking with status: {previous}"
                )

            now = self.clock.now()
            booking.status = CANCELED
            booking.canceled_at = now
            booking.canceled_by = canceled_by
            booking.cancellation_reason = reason
            booking.held_until = None
            booking.updated_at = now
            # A confirmed slot stays consumed; resale is the caller's call
            if booking.slot_id and previous != CONFIRMED:
                self.slots.release(booking.slot_id)

            event = stage_event(self.session, events.CANCELED, booking.id, {
                "bookingId": booking.id,
                "canceledBy": canceled_by,
                "reason": reason,
                "requesterId": booking.requester_id,
                "responderId": booking.responder_id,
            }, now=now)

        logger.info("Booking canceled booking_id=%s canceled_by=%s from=%s", booking_id, canceled_by, previous)
        self.relay.deliver([event])
        return booking

    def fail(self, booking_id: str, reason: str = None) -> Booking:
        with transaction(self.session):
            booking = self._lock_booking(booking_id)
            ensure_transition(booking.status, FAILED)

            now = self.clock.now()
            booking.status = FAILED
            booking.cancellation_reason = (reason or DEFAULT_FAIL_REASON)[:255]
            booking.held_until = None
            booking.updated_at = now
            if booking.slot_id:
                self.slots.release(booking.slot_id)

            event = stage_event(self.session, events.FAILED, booking.id, {
                "bookingId": booking.id,
                "reason": booking.cancellation_reason,
                "requesterId": booking.requester_id,
                "responderId": booking.responder_id,
            }, now=now)

        logger.info("Booking failed booking_id=%s reason=%s", booking_id, reason)
        self.relay.deliver([event])
        return booking

    def complete(self, booking_id: str) -> Booking:
        return self._finish(booking_id, COMPLETED, events.COMPLETED)

    def mark_no_show(self, booking_id: str) -> Booking:
        return self._finish(booking_id, NO_SHOW, events.NO_SHOW)

    def sweep_expired_holds(self) -> int:
        return self.sweeper.sweep()

    def ensure_hold_active(self, booking: Booking, target: str, now=None) -> None:
        """Reject work on a hold whose deadline passed before the sweeper got to it."""
        now = now or self.clock.now()
        if booking.held_until is not None and booking.held_until < now:
            raise InvalidTransitionError(booking.status, target, "Booking hold has expired")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finish(self, booking_id: str, target: str, event_type: str) -> Booking:
        with transaction(self.session):
            booking = self._lock_booking(booking_id)
            ensure_transition(booking.status, target)

            now = self.clock.now()
            booking.status = target
            booking.updated_at = now
            event = stage_event(self.session, event_type, booking.id, {
                "bookingId": booking.id,
                "requesterId": booking.requester_id,
                "responderId": booking.responder_id,
            }, now=now)

        logger.info("Booking finished booking_id=%s status=%s", booking_id, target)
        self.relay.deliver([event])
        return booking

    def _lock_booking(self, booking_id: str) -> Booking:
        # populate_existing: always act on the persisted status, never a cached copy
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = self.session.scalars(stmt).first()
        if booking is None:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        return booking

    def _find_by_token(self, hold_token: str):
        stmt = select(Booking).where(Booking.hold_token == hold_token)
        return self.session.scalars(stmt).first()

    def _validate_hold(
        self, requester_id, responder_id, slot_id, scheduled_start, scheduled_end,
        duration_minutes, price_cents, hold_token, currency,
        platform_fee_cents, responder_payout_cents,
    ):
        if not hold_token or not str(hold_token).strip():
            raise ValidationError("hold_token required")
        if not requester_id or not responder_id or not slot_id:
            raise ValidationError("requester_id, responder_id and slot_id are required")
        if requester_id == responder_id:
            raise ValidationError("Cannot book time with yourself")
        if scheduled_start is None or scheduled_end is None:
            raise ValidationError("scheduled_start and scheduled_end are required")
        if scheduled_end <= scheduled_start:
            raise ValidationError("scheduled_end must be after scheduled_start")
        if not isinstance(duration_minutes, int) or duration_minutes < MIN_DURATION_MINUTES:
            raise ValidationError(f"duration_minutes must be an integer >= {MIN_DURATION_MINUTES}")
        for name, value in (
            ("price_cents", price_cents),
            ("platform_fee_cents", platform_fee_cents),
            ("responder_payout_cents", responder_payout_cents),
        ):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer (minor units)")
        if not _CURRENCY_RE.match(currency):
            raise ValidationError("currency must be a 3-letter ISO code")

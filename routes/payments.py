from flask import Blueprint, jsonify, g

from services.errors import InvalidTransitionError, NotFoundError
from services.transitions import AWAITING_PAYMENT, CONFIRMED, HELD
from utils.auth_context import login_required
from utils.audit import record_audit
from utils.ledger import get_ledger, get_payment_coordinator

payments_bp = Blueprint("payments", __name__)


@payments_bp.post("/bookings/<booking_id>/payment")
@login_required
def start_payment(booking_id: str):
    ledger = get_ledger()
    booking = ledger.get_by_id(booking_id)
    if booking.requester_id != g.user_id:
        raise NotFoundError("Booking not found", booking_id=booking_id)
    if booking.status != HELD:
        raise InvalidTransitionError(booking.status, AWAITING_PAYMENT, f"Cannot pay for booking with status: {booking.status}")

    # A lapsed hold the sweeper has not reached yet is not payable
    ledger.ensure_hold_active(booking, CONFIRMED if booking.price_cents == 0 else AWAITING_PAYMENT)

    # Free sessions never reach the payment processor
    if booking.price_cents == 0:
        booking = ledger.confirm(booking_id)
        record_audit("BOOKING_CONFIRM_FREE", booking_id)
        return jsonify(booking=booking.to_dict(), message="Free booking confirmed"), 200

    payment_intent_id = get_payment_coordinator().create_intent(booking)
    booking = ledger.mark_awaiting_payment(booking_id, payment_intent_id)

    record_audit("PAYMENT_INTENT_CREATED", booking_id, payment_intent_id=payment_intent_id)
    return jsonify(
        booking=booking.to_dict(),
        payment_intent_id=payment_intent_id,
        held_until=booking.held_until.isoformat() if booking.held_until else None,
    ), 200

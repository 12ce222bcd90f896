import logging

from flask import Blueprint, request, jsonify

from services.errors import BookingError, InvalidTransitionError
from services.payments import describe_outcome
from utils.audit import record_audit
from utils.ledger import get_ledger, get_payment_coordinator

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


@webhook_bp.post("/stripe")
def stripe_webhook():
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not sig_header:
        return jsonify(error="Missing signature"), 400

    event = get_payment_coordinator().parse_webhook(payload, sig_header)

    kind, booking_id, intent_id, reason = describe_outcome(event)
    if kind is None:
        logger.info("Unhandled Stripe event type=%s", event.get("type"))
        return jsonify(received=True), 200
    if not booking_id:
        logger.error("Stripe event without booking_id metadata payment_intent_id=%s", intent_id)
        return jsonify(received=True), 200

    ledger = get_ledger()
    try:
        if kind == "succeeded":
            ledger.confirm(booking_id, payment_intent_id=intent_id)
            record_audit("PAYMENT_SUCCEEDED", booking_id, payment_intent_id=intent_id)
        else:
            ledger.fail(booking_id, reason=reason)
            record_audit("PAYMENT_FAILED", booking_id, payment_intent_id=intent_id, reason=reason)
    except InvalidTransitionError as exc:
        # Stripe redelivers; a booking that already moved on is not an error for them
        logger.info("Stripe outcome ignored booking_id=%s: %s", booking_id, exc)
    except BookingError as exc:
        if exc.status_code >= 500:
            raise
        logger.warning("Stripe outcome rejected booking_id=%s: %s", booking_id, exc)

    return jsonify(received=True), 200

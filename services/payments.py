"""
Stripe adapter. The booking core never talks to Stripe itself: routes use
this to obtain a payment-intent id and to decode webhook outcomes, then
report those outcomes to the ledger.
"""
import logging

import stripe

from services.errors import BookingError, ValidationError

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


class PaymentConfigError(BookingError):
    status_code = 500
    code = "SERVER_ERROR"


class StripePaymentCoordinator:
    def __init__(self, secret_key: str = None, webhook_secret: str = None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def create_intent(self, booking) -> str:
        if not self.secret_key:
            raise PaymentConfigError("Stripe secret key missing (STRIPE_SECRET_KEY)")
        if booking.price_cents <= 0:
            raise ValidationError("Free bookings do not take payment", booking_id=booking.id)

        intent = stripe.PaymentIntent.create(
            api_key=self.secret_key,
            amount=booking.price_cents,
            currency=booking.currency.lower(),
            metadata={
                "booking_id": booking.id,
                "requester_id": booking.requester_id,
                "responder_id": booking.responder_id,
            },
            # Retries of the same booking must not create a second intent
            idempotency_key=f"booking-{booking.id}",
        )
        logger.info("Payment intent created booking_id=%s payment_intent_id=%s", booking.id, intent["id"])
        return intent["id"]

    def parse_webhook(self, payload: bytes, signature: str):
        if not self.webhook_secret:
            raise PaymentConfigError("Webhook secret not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise ValidationError("Invalid webhook signature") from exc


def describe_outcome(event):
    """
    Reduce a Stripe event to (kind, booking_id, payment_intent_id, reason).
    kind is "succeeded", "failed" or None for events we ignore.
    """
    event_type = event.get("type")
    if event_type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
        return None, None, None, None

    intent = event["data"]["object"]
    meta = intent.get("metadata", {}) or {}
    booking_id = meta.get("booking_id")
    intent_id = intent.get("id")

    if event_type == PAYMENT_SUCCEEDED:
        return "succeeded", booking_id, intent_id, None

    last_error = intent.get("last_payment_error") or {}
    reason = last_error.get("message") or "Payment failed"
    return "failed", booking_id, intent_id, reason

from flask import current_app

from models import db
from services.booking_ledger import BookingLedger
from services.payments import StripePaymentCoordinator


def _state(app=None):
    app = app or current_app
    return app.extensions["slothold"]


def get_ledger(app=None) -> BookingLedger:
    """
    Ledger bound to the app's scoped session, clock and event publisher.
    Cheap to build; routes and jobs create one per call.
    """
    app = app or current_app
    state = _state(app)
    return BookingLedger(
        db.session,
        clock=state["clock"],
        publisher=state["publisher"],
        hold_minutes=app.config["HOLD_MINUTES"],
        payment_hold_minutes=app.config["PAYMENT_HOLD_MINUTES"],
        default_currency=app.config.get("DEFAULT_CURRENCY", "USD"),
    )


def get_payment_coordinator(app=None) -> StripePaymentCoordinator:
    return _state(app)["payments"]

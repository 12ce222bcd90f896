from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, g

from services.errors import InvalidTransitionError, NotFoundError, ValidationError
from services.transitions import CONFIRMED
from utils.auth_context import login_required
from utils.audit import audit_trail, record_audit
from utils.ledger import get_ledger

booking_bp = Blueprint("booking", __name__)

def _parse_iso(dt_str, field: str):
    # Expect ISO format like "2026-01-20T18:00:00"; aware values are stored as naive UTC
    if not dt_str:
        raise ValidationError(f"{field} required")
    try:
        value = datetime.fromisoformat(str(dt_str).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {field}. Use ISO e.g. 2026-01-20T18:00:00")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def _int_field(data: dict, field: str, default=None):
    value = data.get(field, default)
    if value is None:
        raise ValidationError(f"{field} required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value

def _legacy() -> bool:
    return request.args.get("legacy", "").lower() in ("1", "true", "yes")

def _get_involved_booking(ledger, booking_id: str):
    booking = ledger.get_by_id(booking_id)
    if g.user_id not in (booking.requester_id, booking.responder_id):
        # Don't leak bookings of other people
        raise NotFoundError("Booking not found", booking_id=booking_id)
    return booking


# ---------- Availability ----------
@booking_bp.get("/slots/<responder_id>")
@login_required
def list_available_slots(responder_id: str):
    start = _parse_iso(request.args.get("start"), "start")
    end = _parse_iso(request.args.get("end"), "end")

    slots = get_ledger().list_available_slots(responder_id, start, end)
    return jsonify(slots=[s.to_dict() for s in slots], count=len(slots)), 200


# ---------- Hold (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings/hold")
@login_required
def create_hold():
    data = request.get_json(silent=True) or {}
    hold_token = (data.get("hold_token") or request.headers.get("Idempotency-Key") or "").strip()

    booking = get_ledger().create_hold(
        requester_id=g.user_id,
        responder_id=(data.get("responder_id") or "").strip(),
        slot_id=(data.get("slot_id") or "").strip(),
        scheduled_start=_parse_iso(data.get("scheduled_start"), "scheduled_start"),
        scheduled_end=_parse_iso(data.get("scheduled_end"), "scheduled_end"),
        duration_minutes=_int_field(data, "duration_minutes"),
        timezone=(data.get("timezone") or "UTC").strip(),
        price_cents=_int_field(data, "price_cents"),
        hold_token=hold_token,
        currency=data.get("currency"),
        notes=data.get("notes"),
    )

    record_audit("BOOKING_HOLD", booking.id, slot_id=booking.slot_id)
    return jsonify(
        booking=booking.to_dict(legacy=_legacy()),
        held_until=booking.held_until.isoformat() if booking.held_until else None,
    ), 201


# ---------- Outcomes ----------
@booking_bp.post("/bookings/<booking_id>/confirm")
@login_required
def confirm_booking(booking_id: str):
    data = request.get_json(silent=True) or {}
    ledger = get_ledger()
    booking = _get_involved_booking(ledger, booking_id)
    # Paid bookings are confirmed by the Stripe webhook, never by a participant
    if booking.price_cents > 0:
        raise InvalidTransitionError(
            booking.status, CONFIRMED, "Paid bookings are confirmed when payment succeeds"
        )
    ledger.ensure_hold_active(booking, CONFIRMED)

    booking = ledger.confirm(
        booking_id,
        payment_intent_id=data.get("payment_intent_id"),
        session_id=data.get("session_id"),
    )

    record_audit("BOOKING_CONFIRM", booking_id)
    return jsonify(booking=booking.to_dict(legacy=_legacy())), 200


@booking_bp.post("/bookings/<booking_id>/cancel")
@login_required
def cancel_booking(booking_id: str):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None
    ledger = get_ledger()
    _get_involved_booking(ledger, booking_id)

    booking = ledger.cancel(booking_id, canceled_by=g.user_id, reason=reason)

    record_audit("BOOKING_CANCEL", booking_id, reason=reason)
    return jsonify(booking=booking.to_dict(legacy=_legacy()), message="Cancelled"), 200


@booking_bp.post("/bookings/<booking_id>/fail")
@login_required
def fail_booking(booking_id: str):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None
    ledger = get_ledger()
    _get_involved_booking(ledger, booking_id)

    booking = ledger.fail(booking_id, reason=reason)

    record_audit("BOOKING_FAIL", booking_id, reason=reason)
    return jsonify(booking=booking.to_dict(legacy=_legacy())), 200


@booking_bp.post("/bookings/<booking_id>/complete")
@login_required
def complete_booking(booking_id: str):
    ledger = get_ledger()
    _get_involved_booking(ledger, booking_id)
    booking = ledger.complete(booking_id)

    record_audit("BOOKING_COMPLETE", booking_id)
    return jsonify(booking=booking.to_dict(legacy=_legacy())), 200


@booking_bp.post("/bookings/<booking_id>/no-show")
@login_required
def no_show_booking(booking_id: str):
    ledger = get_ledger()
    _get_involved_booking(ledger, booking_id)
    booking = ledger.mark_no_show(booking_id)

    record_audit("BOOKING_NO_SHOW", booking_id)
    return jsonify(booking=booking.to_dict(legacy=_legacy())), 200


# ---------- Reads ----------
@booking_bp.get("/bookings/upcoming")
@login_required
def upcoming_bookings():
    rows = get_ledger().list_upcoming(g.user_id)
    legacy = _legacy()
    return jsonify(bookings=[b.to_dict(legacy=legacy) for b in rows], count=len(rows)), 200


@booking_bp.get("/bookings/<booking_id>")
@login_required
def get_booking(booking_id: str):
    booking = _get_involved_booking(get_ledger(), booking_id)
    return jsonify(booking=booking.to_dict(legacy=_legacy())), 200


@booking_bp.get("/bookings/<booking_id>/audit")
@login_required
def booking_audit(booking_id: str):
    _get_involved_booking(get_ledger(), booking_id)
    rows = audit_trail(booking_id)
    return jsonify(entries=[r.to_dict() for r in rows], count=len(rows)), 200


@booking_bp.get("/bookings")
@login_required
def my_bookings():
    # optional: status filter, comma separated (held,confirmed)
    status = request.args.get("status")
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None

    rows = get_ledger().list_for_user(g.user_id, statuses)
    legacy = _legacy()
    return jsonify(bookings=[b.to_dict(legacy=legacy) for b in rows], count=len(rows)), 200

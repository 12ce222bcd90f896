import json
import logging

from flask import g, has_request_context, request
from sqlalchemy import select

from models import db
from models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def record_audit(action: str, booking_id=None, actor_id=None, **detail):
    """
    Append an audit row after a booking operation committed. The booking
    change is already durable, so a failed audit write is logged, not raised.
    """
    ip = None
    user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None
        if actor_id is None:
            actor_id = getattr(g, "user_id", None)

    detail = {k: v for k, v in detail.items() if v is not None}
    row = AuditLog(
        actor_id=actor_id,
        action=action,
        booking_id=booking_id,
        ip=ip,
        user_agent=user_agent,
        detail_json=json.dumps(detail) if detail else None,
    )
    try:
        db.session.add(row)
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        logger.warning("Audit write failed action=%s booking_id=%s: %s", action, booking_id, exc)


def audit_trail(booking_id: str):
    stmt = (
        select(AuditLog)
        .where(AuditLog.booking_id == booking_id)
        .order_by(AuditLog.id.asc())
    )
    return list(db.session.scalars(stmt))

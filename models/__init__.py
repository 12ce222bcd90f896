from .db import db
from .audit_log import AuditLog
from .slot import BookingSlot
from .booking import Booking
from .booking_event import BookingEvent

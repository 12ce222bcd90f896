"""
Typed errors for the booking core.

Callers branch on the type: Conflict means "pick another slot",
InvalidTransition means "this action is no longer valid", NotFound is
terminal. The HTTP layer maps ``status_code`` straight onto the response.
"""


class BookingError(Exception):
    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        out = {"error": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class NotFoundError(BookingError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(BookingError):
    status_code = 409
    code = "CONFLICT"


class InvalidTransitionError(BookingError):
    status_code = 400
    code = "INVALID_STATUS"

    def __init__(self, current: str, target: str, message: str = None):
        super().__init__(
            message or f"Invalid state transition from {current} to {target}",
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class ValidationError(BookingError):
    status_code = 400
    code = "INVALID_REQUEST"

"""
Reservation Boss - Error Taxonomy
==================================

Every business-rule failure is a `BookingError` carrying the HTTP status the
API layer answers with. Messages are user facing and returned verbatim.
"""


class BookingError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BookingValidationError(BookingError):
    """Missing or malformed input (bad email, unknown spot or date)."""


# ==========================================
# CONFLICTS (business rules)
# ==========================================

class ConflictError(BookingError):
    pass


class DuplicateDayBooking(ConflictError):
    pass


class SpotTaken(ConflictError):
    pass


class WeeklyLimitExceeded(ConflictError):
    pass


# ==========================================
# AUTH / LOOKUP / STORE
# ==========================================

class AuthError(BookingError):
    status_code = 401


class InvalidTokenError(AuthError):
    status_code = 403


class NotFoundError(BookingError):
    status_code = 404


class TransientError(BookingError):
    """Store or network failure. Callers may retry."""

    status_code = 500


# ==========================================
# CANCELLATION FLOW
# ==========================================

class CancellationDenied(BookingError):
    status_code = 403


class EmailMismatch(CancellationDenied):
    pass


class CancellationWindowClosed(CancellationDenied):
    pass


class InvalidOrExpiredRequest(NotFoundError):
    pass


class CodeExpired(CancellationDenied):
    pass


class InvalidCode(CancellationDenied):
    pass


class TooManyAttempts(CancellationDenied):
    pass

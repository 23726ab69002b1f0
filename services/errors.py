class BookingError(Exception):
    """Base class for expected booking outcomes other than success."""

    code = "BOOKING_ERROR"
    status = 400
    default_message = "Booking request failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self):
        return str(self)


class Unauthorized(BookingError):
    code = "UNAUTHORIZED"
    status = 401
    default_message = "Authentication required"


class Forbidden(BookingError):
    code = "FORBIDDEN"
    status = 403
    default_message = "Forbidden"


class FacilityNotFound(BookingError):
    code = "FACILITY_NOT_FOUND"
    status = 404
    default_message = "Facility not found"


class BookingNotFound(BookingError):
    code = "BOOKING_NOT_FOUND"
    status = 404
    default_message = "Booking not found"


class InvalidCourt(BookingError):
    code = "INVALID_COURT"
    status = 400
    default_message = "Invalid court"


class InvalidBookingRequest(BookingError):
    code = "INVALID_BOOKING"
    status = 400
    default_message = "Invalid booking request"


class ChangeWindowClosed(BookingError):
    code = "CHANGE_WINDOW_CLOSED"
    status = 400
    default_message = "Booking can no longer be changed"


class NoCourtAvailable(BookingError):
    code = "NO_COURT_AVAILABLE"
    status = 409
    default_message = "No court available"


class BookingLimitReached(BookingError):
    code = "BOOKING_LIMIT_REACHED"
    status = 403
    default_message = "Booking limit reached"

    def __init__(self, message=None, scope=None):
        super().__init__(message)
        self.scope = scope  # "day" or "week"


class InternalError(BookingError):
    code = "INTERNAL_ERROR"
    status = 500
    default_message = "Internal server error"


class InvalidEquipment(BookingError):
    code = "INVALID_EQUIPMENT"
    status = 400
    default_message = "Invalid equipment"

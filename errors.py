"""
Error kinds raised by the booking core.

Each error carries a stable ``kind`` and an HTTP status so the API layer can
render a specific message without inspecting storage errors.
"""


class BookingError(Exception):
    """Base exception for booking operations."""

    kind = "booking_error"
    status_code = 400
    default_message = "Booking operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BookingError):
    """Raised when a slot, appointment, doctor or patient does not exist."""

    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"


class SlotUnavailable(BookingError):
    """Raised when a slot is blocked, booked or at capacity."""

    kind = "slot_unavailable"
    status_code = 409
    default_message = "This slot is no longer available"


class CapacityExceeded(SlotUnavailable):
    """Raised when an increment would push a slot past its capacity."""

    default_message = "This slot is fully booked"


class DuplicateBooking(BookingError):
    """Raised when the patient already holds an active appointment for the slot."""

    kind = "duplicate_booking"
    status_code = 409
    default_message = "Patient already has an appointment for this slot"


class InvalidState(BookingError):
    """Raised when an operation does not apply to the current status."""

    kind = "invalid_state"
    status_code = 409
    default_message = "Invalid appointment state"


class InvalidTransition(InvalidState):
    """Raised when a status change is not an edge of the appointment state machine."""

    kind = "invalid_transition"
    default_message = "Invalid appointment state transition"


class Expired(BookingError):
    """Raised when confirmation is attempted after the appointment expired."""

    kind = "expired"
    status_code = 410
    default_message = "Appointment confirmation time has expired"


class AlreadyCancelled(BookingError):
    kind = "already_cancelled"
    status_code = 409
    default_message = "Appointment is already cancelled"


class Conflict(BookingError):
    """Raised when lock contention outlasts the retry budget."""

    kind = "conflict"
    status_code = 503
    default_message = "The booking system is busy, please try again"


class ValidationFailed(BookingError):
    kind = "validation"
    status_code = 422
    default_message = "Invalid input"

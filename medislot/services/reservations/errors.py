# medislot/services/reservations/errors.py
"""
Reservation error taxonomy.

Every error carries the HTTP status and machine code the API answers with.
"""


class ReservationError(Exception):
    status_code = 400
    code = "reservation_error"
    default_message = "Reservation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class SlotUnavailable(ReservationError):
    """Slot already held or booked."""
    status_code = 409
    code = "slot_unavailable"
    default_message = "Time slot is already held or booked"


class HoldExpired(ReservationError):
    """Hold elapsed or was released before confirmation."""
    status_code = 410
    code = "hold_expired"
    default_message = "Hold has expired"


class Forbidden(ReservationError):
    status_code = 403
    code = "forbidden"
    default_message = "Not allowed for this reservation"


class NotFound(ReservationError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Busy(ReservationError):
    """Per-slot lock not acquired within the bounded wait."""
    status_code = 503
    code = "busy"
    default_message = "Slot is busy, retry later"


class InvalidSlot(ReservationError):
    """Requested time is not offered or is inside the booking lead time."""
    status_code = 400
    code = "invalid_slot"
    default_message = "Time slot is not bookable"


class ScheduleConflict(ReservationError):
    status_code = 400
    code = "schedule_conflict"
    default_message = "Schedule conflicts with another appointment type"


class InvalidTransition(ReservationError):
    status_code = 409
    code = "invalid_transition"
    default_message = "Status transition not allowed"

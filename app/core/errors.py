"""Typed booking errors.

Services raise these; the exception handler in app.main renders them as
{"error": code, "detail": message} with the matching HTTP status.
"""


class BookingError(Exception):
    code = "BookingError"
    status_code = 400
    message = "The booking request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class BookingTypeNotFound(BookingError):
    code = "NotFound"
    status_code = 404
    message = "Booking type not found."


class AppointmentNotFound(BookingError):
    code = "NotFound"
    status_code = 404
    message = "Appointment not found."


class InvalidManageToken(BookingError):
    code = "Unauthorized"
    status_code = 401
    message = "Appointment not found or link is invalid."


class SlotNoLongerAvailable(BookingError):
    code = "SlotNoLongerAvailable"
    status_code = 409
    message = "This time is no longer available. Please pick another time."


class AlreadyCancelled(BookingError):
    code = "AlreadyCancelled"
    status_code = 409
    message = "This appointment has already been cancelled."


class PastAppointment(BookingError):
    code = "PastAppointment"
    status_code = 410
    message = "This appointment has already taken place and can no longer be changed."


class InThePast(BookingError):
    code = "InThePast"
    status_code = 422
    message = "The requested time is in the past."


class AvailabilityUnavailable(BookingError):
    code = "AvailabilityUnavailable"
    status_code = 503
    message = "Availability cannot be checked right now. Please try again shortly."

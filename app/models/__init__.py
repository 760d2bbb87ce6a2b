from app.models.agency import Agency, HostUser
from app.models.booking_type import AvailabilityWindow, BookingType
from app.models.appointment import Appointment, AppointmentEvent, AppointmentStatus

__all__ = [
    "Agency",
    "HostUser",
    "BookingType",
    "AvailabilityWindow",
    "Appointment",
    "AppointmentEvent",
    "AppointmentStatus",
]

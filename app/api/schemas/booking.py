from datetime import date, datetime

from pydantic import AwareDatetime, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from app.services.calendar_utils import is_valid_zone


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestModel(CamelModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def _check_zone(v: str | None) -> str | None:
    if v is not None and not is_valid_zone(v):
        raise ValueError("guestTimezone must be an IANA timezone name")
    return v


# --- Requests ---


class CreateBookingRequest(RequestModel):
    start_time: AwareDatetime
    guest_name: str = Field(min_length=1, max_length=200)
    guest_email: EmailStr
    guest_phone: str | None = Field(default=None, max_length=50)
    guest_company: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)
    guest_timezone: str | None = None

    @field_validator("guest_timezone")
    @classmethod
    def check_guest_timezone(cls, v: str | None) -> str | None:
        return _check_zone(v)


class CancelBookingRequest(RequestModel):
    token: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=1000)


class RescheduleBookingRequest(RequestModel):
    token: str = Field(min_length=1)
    new_start_time: AwareDatetime
    guest_timezone: str | None = None

    @field_validator("guest_timezone")
    @classmethod
    def check_guest_timezone(cls, v: str | None) -> str | None:
        return _check_zone(v)


# --- Responses ---


class BookingTypePublic(CamelModel):
    id: int
    name: str
    description: str | None = None
    duration: int  # minutes
    color: str | None = None
    min_notice_minutes: int = 0
    max_future_days: int | None = None


class HostPublic(CamelModel):
    id: int
    name: str


class AgencyBranding(CamelModel):
    name: str
    logo: str | None = None
    primary_color: str | None = None


class BookingInfoResponse(CamelModel):
    booking_type: BookingTypePublic
    host_user: HostPublic | None = None
    agency: AgencyBranding | None = None
    timezone: str


class AvailableDaysResponse(CamelModel):
    month: str  # YYYY-MM
    timezone: str
    days_in_month: int
    first_weekday_index: int  # 0 = Sunday
    available_days: list[date]


class SlotOut(CamelModel):
    time: datetime
    end_time: datetime


class AvailableSlotsResponse(CamelModel):
    date: date
    timezone: str
    slots: list[SlotOut]


class AppointmentBookingType(CamelModel):
    id: int
    name: str
    duration: int
    color: str | None = None


class AppointmentPublic(CamelModel):
    id: int
    status: str
    start_time: datetime
    end_time: datetime
    booking_type: AppointmentBookingType
    host: HostPublic | None = None
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    guest_company: str | None = None
    notes: str | None = None
    guest_timezone: str | None = None
    meeting_link: str | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    previous_start_time: datetime | None = None
    rescheduled_at: datetime | None = None


class BookingCreatedResponse(CamelModel):
    appointment: AppointmentPublic
    manage_token: str
    manage_url: str


class AppointmentResponse(CamelModel):
    appointment: AppointmentPublic

"""Guest self-service for one booking, authorized by the manage-link token only."""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import get_clock, get_session, get_session_maker
from app.api.routes.booking import appointment_to_public, manage_url
from app.api.schemas.booking import (
    AppointmentPublic,
    AppointmentResponse,
    CancelBookingRequest,
    RescheduleBookingRequest,
)
from app.core.clock import Clock
from app.core.errors import AppointmentNotFound, InvalidManageToken
from app.models.agency import HostUser
from app.models.appointment import Appointment
from app.models.booking_type import BookingType
from app.services.appointment_service import (
    cancel_appointment,
    get_appointment_for_guest,
    reschedule_appointment,
)
from app.services.calendar_utils import as_utc
from app.services.email_service import (
    send_booking_cancellation_email,
    send_booking_rescheduled_email,
    send_host_booking_notification_email,
)

router = APIRouter(prefix="/booking/manage", tags=["booking"])


async def _context(session: AsyncSession, a: Appointment) -> tuple[BookingType, HostUser | None]:
    booking_type = await session.get(BookingType, a.booking_type_id)
    if booking_type is None:
        raise AppointmentNotFound()
    host = await session.get(HostUser, a.host_user_id) if a.host_user_id else None
    return booking_type, host


def _notify_host(
    background_tasks: BackgroundTasks, host: HostUser | None, event: str, a: Appointment, booking_type: BookingType
) -> None:
    if not host or not host.email:
        return
    background_tasks.add_task(
        send_host_booking_notification_email,
        host_email=host.email,
        event=event,
        guest_name=a.guest_name,
        guest_email=a.guest_email,
        booking_name=booking_type.name,
        start=as_utc(a.start_time),
        end=as_utc(a.end_time),
        zone=booking_type.timezone,
    )


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def get_managed_appointment(
    appointment_id: int,
    token: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    try:
        appointment = await get_appointment_for_guest(session, appointment_id, token)
    except InvalidManageToken as e:
        # Same answer as a missing appointment so a wrong token learns nothing
        raise AppointmentNotFound() from e
    booking_type, host = await _context(session, appointment)
    return appointment_to_public(appointment, booking_type, host)


@router.delete("/{appointment_id}", response_model=AppointmentResponse)
async def cancel_managed_appointment(
    appointment_id: int,
    body: CancelBookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    clock: Clock = Depends(get_clock),
) -> AppointmentResponse:
    try:
        appointment = await cancel_appointment(
            session_maker, appointment_id, body.token, body.reason, clock=clock
        )
    except AppointmentNotFound as e:
        raise InvalidManageToken() from e
    booking_type, host = await _context(session, appointment)
    background_tasks.add_task(
        send_booking_cancellation_email,
        to_email=appointment.guest_email,
        guest_name=appointment.guest_name,
        booking_name=booking_type.name,
        start=as_utc(appointment.start_time),
        end=as_utc(appointment.end_time),
        zone=appointment.guest_timezone or booking_type.timezone,
        reason=appointment.cancel_reason,
    )
    _notify_host(background_tasks, host, "Cancelled", appointment, booking_type)
    return AppointmentResponse(appointment=appointment_to_public(appointment, booking_type, host))


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def reschedule_managed_appointment(
    appointment_id: int,
    body: RescheduleBookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    clock: Clock = Depends(get_clock),
) -> AppointmentResponse:
    try:
        appointment = await reschedule_appointment(
            session_maker,
            appointment_id,
            body.token,
            body.new_start_time,
            clock=clock,
            guest_timezone=body.guest_timezone,
        )
    except AppointmentNotFound as e:
        raise InvalidManageToken() from e
    booking_type, host = await _context(session, appointment)
    background_tasks.add_task(
        send_booking_rescheduled_email,
        to_email=appointment.guest_email,
        guest_name=appointment.guest_name,
        booking_name=booking_type.name,
        start=as_utc(appointment.start_time),
        end=as_utc(appointment.end_time),
        zone=appointment.guest_timezone or booking_type.timezone,
        previous_start=as_utc(appointment.previous_start_time) if appointment.previous_start_time else None,
        meeting_link=appointment.meeting_link,
        manage_url=manage_url(appointment.id, body.token),
    )
    _notify_host(background_tasks, host, "Rescheduled", appointment, booking_type)
    return AppointmentResponse(appointment=appointment_to_public(appointment, booking_type, host))

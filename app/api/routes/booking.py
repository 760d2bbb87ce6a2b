import logging
from collections.abc import Callable
from datetime import date, timedelta
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import get_clock, get_session, get_session_maker, get_zone_resolver
from app.api.schemas.booking import (
    AgencyBranding,
    AppointmentBookingType,
    AppointmentPublic,
    AvailableDaysResponse,
    AvailableSlotsResponse,
    BookingCreatedResponse,
    BookingInfoResponse,
    BookingTypePublic,
    CreateBookingRequest,
    HostPublic,
    SlotOut,
)
from app.core.clock import Clock
from app.core.config import settings
from app.models.agency import HostUser
from app.models.appointment import Appointment, AppointmentStatus
from app.models.booking_type import BookingType
from app.services.appointment_service import GuestDetails, create_appointment
from app.services.booking_type_service import ResolvedBookingType, resolve_booking_type
from app.services.calendar_utils import as_utc, days_in_month
from app.services.email_service import (
    send_booking_confirmation_email,
    send_host_booking_notification_email,
)
from app.services.slot_service import get_open_days, get_open_slots

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/booking", tags=["booking"])

BookingPageResponse = BookingInfoResponse | AvailableDaysResponse | AvailableSlotsResponse


def manage_url(appointment_id: int, token: str) -> str:
    base = settings.public_base_url.rstrip("/")
    return f"{base}/book/manage/{appointment_id}?{urlencode({'token': token})}"


def appointment_to_public(a: Appointment, booking_type: BookingType, host: HostUser | None) -> AppointmentPublic:
    """Public shape of an appointment; datetimes go out as aware UTC."""
    return AppointmentPublic(
        id=a.id,
        status=AppointmentStatus(a.status).value,
        start_time=as_utc(a.start_time),
        end_time=as_utc(a.end_time),
        booking_type=AppointmentBookingType(
            id=booking_type.id,
            name=booking_type.name,
            duration=booking_type.duration_minutes,
            color=booking_type.color,
        ),
        host=HostPublic(id=host.id, name=host.name) if host else None,
        guest_name=a.guest_name,
        guest_email=a.guest_email,
        guest_phone=a.guest_phone,
        guest_company=a.guest_company,
        notes=a.notes,
        guest_timezone=a.guest_timezone,
        meeting_link=a.meeting_link,
        cancelled_at=as_utc(a.cancelled_at) if a.cancelled_at else None,
        cancel_reason=a.cancel_reason,
        previous_start_time=as_utc(a.previous_start_time) if a.previous_start_time else None,
        rescheduled_at=as_utc(a.rescheduled_at) if a.rescheduled_at else None,
    )


def _info(resolved: ResolvedBookingType) -> BookingInfoResponse:
    bt = resolved.booking_type
    return BookingInfoResponse(
        booking_type=BookingTypePublic(
            id=bt.id,
            name=bt.name,
            description=bt.description,
            duration=bt.duration_minutes,
            color=bt.color,
            min_notice_minutes=bt.min_notice_minutes,
            max_future_days=bt.max_future_days,
        ),
        host_user=HostPublic(id=resolved.host.id, name=resolved.host.name) if resolved.host else None,
        agency=(
            AgencyBranding(
                name=resolved.agency.name,
                logo=resolved.agency.logo,
                primary_color=resolved.agency.primary_color,
            )
            if resolved.agency
            else None
        ),
        timezone=bt.timezone,
    )


async def _booking_page(
    session: AsyncSession,
    clock: Clock,
    slug: str,
    host_slug: str | None,
    month: str | None,
    day: date | None,
) -> BookingPageResponse:
    resolved = await resolve_booking_type(session, slug, host_slug)
    bt = resolved.booking_type
    now = clock.now()
    if day is not None:
        slots = await get_open_slots(session, bt, day, now)
        duration = resolved.booking_type.duration_minutes
        return AvailableSlotsResponse(
            date=day,
            timezone=bt.timezone,
            slots=[SlotOut(time=s, end_time=s + timedelta(minutes=duration)) for s in slots],
        )
    if month is not None:
        year, month_number = (int(part) for part in month.split("-"))
        grid = days_in_month(year, month_number)
        days = await get_open_days(session, bt, year, month_number, now)
        return AvailableDaysResponse(
            month=month,
            timezone=bt.timezone,
            days_in_month=grid.count,
            first_weekday_index=grid.first_weekday_index,
            available_days=days,
        )
    return _info(resolved)


async def _book(
    body: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession,
    session_maker: async_sessionmaker[AsyncSession],
    clock: Clock,
    zone_resolver: Callable[[], str],
    slug: str,
    host_slug: str | None,
) -> BookingCreatedResponse:
    resolved = await resolve_booking_type(session, slug, host_slug)
    bt = resolved.booking_type
    guest = GuestDetails(
        name=body.guest_name,
        email=str(body.guest_email),
        phone=body.guest_phone,
        company=body.guest_company,
        notes=body.notes,
        timezone=body.guest_timezone,
    )
    appointment, token = await create_appointment(
        session_maker, bt, body.start_time, guest, clock=clock, zone_resolver=zone_resolver
    )
    link = manage_url(appointment.id, token)
    logger.debug("Queueing booking notifications for appointment %s", appointment.id)
    # Notifications run after the response; booking is already committed
    background_tasks.add_task(
        send_booking_confirmation_email,
        to_email=appointment.guest_email,
        guest_name=appointment.guest_name,
        booking_name=bt.name,
        start=as_utc(appointment.start_time),
        end=as_utc(appointment.end_time),
        zone=appointment.guest_timezone or bt.timezone,
        meeting_link=appointment.meeting_link,
        manage_url=link,
    )
    if resolved.host and resolved.host.email:
        background_tasks.add_task(
            send_host_booking_notification_email,
            host_email=resolved.host.email,
            event="Booked",
            guest_name=appointment.guest_name,
            guest_email=appointment.guest_email,
            booking_name=bt.name,
            start=as_utc(appointment.start_time),
            end=as_utc(appointment.end_time),
            zone=bt.timezone,
        )
    return BookingCreatedResponse(
        appointment=appointment_to_public(appointment, bt, resolved.host),
        manage_token=token,
        manage_url=link,
    )


@router.get("/{slug}", response_model=BookingPageResponse)
async def booking_page(
    slug: str,
    month: str | None = Query(None, pattern=r"^[1-9]\d{3}-(0[1-9]|1[0-2])$"),
    day: date | None = Query(None, alias="date"),
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> BookingPageResponse:
    """Booking type info; with ?month=YYYY-MM the open days; with ?date=YYYY-MM-DD the open slots."""
    return await _booking_page(session, clock, slug, None, month, day)


@router.get("/{host_slug}/{slug}", response_model=BookingPageResponse)
async def host_booking_page(
    host_slug: str,
    slug: str,
    month: str | None = Query(None, pattern=r"^[1-9]\d{3}-(0[1-9]|1[0-2])$"),
    day: date | None = Query(None, alias="date"),
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> BookingPageResponse:
    return await _booking_page(session, clock, slug, host_slug, month, day)


@router.post("/{slug}", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def book(
    slug: str,
    body: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    clock: Clock = Depends(get_clock),
    zone_resolver: Callable[[], str] = Depends(get_zone_resolver),
) -> BookingCreatedResponse:
    return await _book(body, background_tasks, session, session_maker, clock, zone_resolver, slug, None)


@router.post(
    "/{host_slug}/{slug}", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED
)
async def book_with_host(
    host_slug: str,
    slug: str,
    body: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    clock: Clock = Depends(get_clock),
    zone_resolver: Callable[[], str] = Depends(get_zone_resolver),
) -> BookingCreatedResponse:
    return await _book(body, background_tasks, session, session_maker, clock, zone_resolver, slug, host_slug)

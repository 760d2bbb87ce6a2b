"""Appointment lifecycle: create, cancel, reschedule, complete.

Writes run in their own transaction from a session maker so the
check-then-write happens under the resource lock and commits before any
notification is sent. SCHEDULED -> CANCELLED is terminal; SCHEDULED ->
SCHEDULED is a reschedule; SCHEDULED -> COMPLETED happens once it has ended.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock
from app.core.errors import (
    AlreadyCancelled,
    AppointmentNotFound,
    InThePast,
    InvalidManageToken,
    PastAppointment,
    SlotNoLongerAvailable,
)
from app.core.security import create_manage_token, new_token_id, verify_manage_token
from app.models.appointment import Appointment, AppointmentEvent, AppointmentStatus
from app.models.booking_type import BookingType
from app.services.availability_service import is_offered
from app.services.booking_type_service import load_rules
from app.services.calendar_utils import as_utc, detect_local_zone, to_naive_utc
from app.services.conflict_service import filter_conflicts, load_busy_intervals
from app.services.locks import acquire_advisory_lock, resource_lock

logger = logging.getLogger(__name__)


@dataclass
class GuestDetails:
    name: str
    email: str
    phone: str | None = None
    company: str | None = None
    notes: str | None = None
    timezone: str | None = None


async def _ensure_slot_free(
    session: AsyncSession,
    booking_type: BookingType,
    slot_start: datetime,
    now: datetime,
    exclude_appointment_id: int | None = None,
) -> None:
    """Re-run the resolver and the conflict filter for one instant at write time."""
    rules = await load_rules(session, booking_type)
    if not is_offered(rules, slot_start, now):
        raise SlotNoLongerAvailable()
    duration = timedelta(minutes=booking_type.duration_minutes)
    busy = await load_busy_intervals(
        session,
        booking_type.resource_key,
        slot_start - timedelta(minutes=booking_type.buffer_after_minutes),
        slot_start + duration + timedelta(minutes=booking_type.buffer_before_minutes),
        exclude_appointment_id=exclude_appointment_id,
    )
    free = filter_conflicts(
        [slot_start],
        booking_type.duration_minutes,
        busy,
        booking_type.buffer_before_minutes,
        booking_type.buffer_after_minutes,
    )
    if not free:
        raise SlotNoLongerAvailable()


async def create_appointment(
    session_maker: async_sessionmaker[AsyncSession],
    booking_type: BookingType,
    slot_start: datetime,
    guest: GuestDetails,
    *,
    clock: Clock,
    zone_resolver: Callable[[], str] = detect_local_zone,
) -> tuple[Appointment, str]:
    """Book a slot. Returns the appointment and its guest manage token."""
    slot_start = as_utc(slot_start)
    now = clock.now()
    if slot_start <= now:
        raise InThePast()
    key = booking_type.resource_key
    token_id = new_token_id()
    async with resource_lock(key):
        async with session_maker() as session:
            try:
                async with session.begin():
                    await acquire_advisory_lock(session, key)
                    await _ensure_slot_free(session, booking_type, slot_start, now)
                    appointment = Appointment(
                        booking_type_id=booking_type.id,
                        host_user_id=booking_type.host_user_id,
                        resource_key=key,
                        start_time=to_naive_utc(slot_start),
                        end_time=to_naive_utc(slot_start + timedelta(minutes=booking_type.duration_minutes)),
                        status=AppointmentStatus.SCHEDULED.value,
                        guest_name=guest.name,
                        guest_email=guest.email,
                        guest_phone=guest.phone,
                        guest_company=guest.company,
                        notes=guest.notes,
                        guest_timezone=guest.timezone or zone_resolver(),
                        meeting_link=booking_type.meeting_link,
                        manage_token_id=token_id,
                        created_at=to_naive_utc(now),
                        updated_at=to_naive_utc(now),
                    )
                    session.add(appointment)
                    await session.flush()
                    session.add(
                        AppointmentEvent(
                            appointment_id=appointment.id,
                            action="created",
                            to_start=appointment.start_time,
                            created_at=to_naive_utc(now),
                        )
                    )
            except IntegrityError as e:
                logger.info("Slot %s for %s taken concurrently: %s", slot_start.isoformat(), key, e.orig)
                raise SlotNoLongerAvailable() from e
    logger.info("Appointment %s booked for %s at %s", appointment.id, key, slot_start.isoformat())
    return appointment, create_manage_token(appointment.id, token_id)


async def _get_for_guest(session: AsyncSession, appointment_id: int, token: str | None) -> Appointment:
    appointment = await session.get(Appointment, appointment_id)
    if not appointment:
        raise AppointmentNotFound()
    if not verify_manage_token(token, appointment.id, appointment.manage_token_id):
        raise InvalidManageToken()
    return appointment


async def get_appointment_for_guest(
    session: AsyncSession, appointment_id: int, token: str | None
) -> Appointment:
    return await _get_for_guest(session, appointment_id, token)


def _ensure_changeable(appointment: Appointment, now: datetime) -> None:
    if appointment.status == AppointmentStatus.CANCELLED:
        raise AlreadyCancelled()
    if appointment.status == AppointmentStatus.COMPLETED or as_utc(appointment.start_time) <= now:
        raise PastAppointment()


async def cancel_appointment(
    session_maker: async_sessionmaker[AsyncSession],
    appointment_id: int,
    token: str | None,
    reason: str | None = None,
    *,
    clock: Clock,
) -> Appointment:
    now = clock.now()
    async with session_maker() as session:
        async with session.begin():
            appointment = await _get_for_guest(session, appointment_id, token)
            _ensure_changeable(appointment, now)
            # Conditional update: a concurrent cancel that got here first leaves nothing to match
            result = await session.execute(
                update(Appointment)
                .where(
                    Appointment.id == appointment_id,
                    Appointment.status == AppointmentStatus.SCHEDULED.value,
                )
                .values(
                    status=AppointmentStatus.CANCELLED.value,
                    cancelled_at=to_naive_utc(now),
                    cancel_reason=reason,
                    updated_at=to_naive_utc(now),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise AlreadyCancelled()
            session.add(
                AppointmentEvent(
                    appointment_id=appointment_id,
                    action="cancelled",
                    from_start=appointment.start_time,
                    reason=reason,
                    created_at=to_naive_utc(now),
                )
            )
            await session.flush()
            await session.refresh(appointment)
    logger.info("Appointment %s cancelled by guest", appointment_id)
    return appointment


async def reschedule_appointment(
    session_maker: async_sessionmaker[AsyncSession],
    appointment_id: int,
    token: str | None,
    new_start: datetime,
    *,
    clock: Clock,
    guest_timezone: str | None = None,
) -> Appointment:
    """Move a scheduled appointment to a new slot in place, keeping the prior start."""
    new_start = as_utc(new_start)
    now = clock.now()
    async with session_maker() as session:
        appointment = await _get_for_guest(session, appointment_id, token)
        _ensure_changeable(appointment, now)
        if new_start <= now:
            raise InThePast()
        booking_type = await session.get(BookingType, appointment.booking_type_id)
        if booking_type is None:
            raise AppointmentNotFound()
        key = appointment.resource_key
    async with resource_lock(key):
        async with session_maker() as session:
            try:
                async with session.begin():
                    await acquire_advisory_lock(session, key)
                    # Re-read under the lock; a cancel may have landed meanwhile
                    appointment = await session.get(Appointment, appointment_id, populate_existing=True)
                    if appointment is None:
                        raise AppointmentNotFound()
                    _ensure_changeable(appointment, now)
                    await _ensure_slot_free(
                        session, booking_type, new_start, now, exclude_appointment_id=appointment_id
                    )
                    prior_start = appointment.start_time
                    appointment.previous_start_time = prior_start
                    appointment.start_time = to_naive_utc(new_start)
                    appointment.end_time = to_naive_utc(
                        new_start + timedelta(minutes=booking_type.duration_minutes)
                    )
                    appointment.rescheduled_at = to_naive_utc(now)
                    appointment.reschedule_count = (appointment.reschedule_count or 0) + 1
                    appointment.updated_at = to_naive_utc(now)
                    if guest_timezone:
                        appointment.guest_timezone = guest_timezone
                    session.add(appointment)
                    session.add(
                        AppointmentEvent(
                            appointment_id=appointment_id,
                            action="rescheduled",
                            from_start=prior_start,
                            to_start=appointment.start_time,
                            created_at=to_naive_utc(now),
                        )
                    )
                    await session.flush()
            except IntegrityError as e:
                logger.info("Reschedule of %s to %s lost a race: %s", appointment_id, new_start.isoformat(), e.orig)
                raise SlotNoLongerAvailable() from e
    logger.info("Appointment %s rescheduled to %s", appointment_id, new_start.isoformat())
    return appointment


async def mark_completed_appointments(session: AsyncSession, now: datetime) -> int:
    """Move SCHEDULED appointments that have ended to COMPLETED. Returns count updated."""
    cutoff = to_naive_utc(now)
    result = await session.execute(
        select(Appointment.id, Appointment.start_time).where(
            Appointment.status == AppointmentStatus.SCHEDULED.value,
            Appointment.end_time <= cutoff,
        )
    )
    ended = result.all()
    if not ended:
        return 0
    await session.execute(
        update(Appointment)
        .where(
            Appointment.id.in_([appointment_id for appointment_id, _ in ended]),
            Appointment.status == AppointmentStatus.SCHEDULED.value,
        )
        .values(status=AppointmentStatus.COMPLETED.value, updated_at=cutoff)
        .execution_options(synchronize_session=False)
    )
    session.add_all(
        AppointmentEvent(appointment_id=appointment_id, action="completed", from_start=start, created_at=cutoff)
        for appointment_id, start in ended
    )
    await session.flush()
    return len(ended)

"""Tests for the appointment lifecycle: create, cancel, reschedule, complete."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlmodel import select

from app.core.errors import (
    AlreadyCancelled,
    AppointmentNotFound,
    InThePast,
    InvalidManageToken,
    PastAppointment,
    SlotNoLongerAvailable,
)
from app.core.security import create_manage_token
from app.models.appointment import Appointment, AppointmentEvent, AppointmentStatus
from app.services.appointment_service import (
    GuestDetails,
    cancel_appointment,
    create_appointment,
    get_appointment_for_guest,
    mark_completed_appointments,
    reschedule_appointment,
)

TUESDAY_9 = datetime(2026, 10, 20, 9, 0, tzinfo=UTC)


def guest(name="Sam Guest", email="sam@example.com"):
    return GuestDetails(name=name, email=email, timezone="America/New_York")


async def book(session_maker, booking_type, clock, start=TUESDAY_9, who=None):
    return await create_appointment(session_maker, booking_type, start, who or guest(), clock=clock)


async def events(db, appointment_id):
    result = await db.execute(
        select(AppointmentEvent).where(AppointmentEvent.appointment_id == appointment_id).order_by(AppointmentEvent.id)
    )
    return [e.action for e in result.scalars().all()]


@pytest.mark.asyncio
async def test_create_appointment(session_maker, booking_type, clock, db):
    appointment, token = await book(session_maker, booking_type, clock)
    assert appointment.id is not None
    assert appointment.status == AppointmentStatus.SCHEDULED
    assert appointment.start_time == datetime(2026, 10, 20, 9, 0)
    assert appointment.end_time == datetime(2026, 10, 20, 9, 30)
    assert appointment.resource_key == f"host:{booking_type.host_user_id}"
    assert appointment.meeting_link == "https://meet.example.com/dana"
    assert appointment.guest_timezone == "America/New_York"
    assert token
    assert await events(db, appointment.id) == ["created"]


@pytest.mark.asyncio
async def test_create_defaults_guest_timezone_from_resolver(session_maker, booking_type, clock):
    appointment, _ = await create_appointment(
        session_maker,
        booking_type,
        TUESDAY_9,
        GuestDetails(name="Sam", email="sam@example.com"),
        clock=clock,
        zone_resolver=lambda: "Asia/Tokyo",
    )
    assert appointment.guest_timezone == "Asia/Tokyo"


@pytest.mark.asyncio
async def test_create_in_the_past_is_rejected(session_maker, booking_type, clock):
    with pytest.raises(InThePast):
        await book(session_maker, booking_type, clock, start=clock.now() - timedelta(hours=1))


@pytest.mark.asyncio
async def test_create_off_grid_instant_is_rejected(session_maker, booking_type, clock):
    with pytest.raises(SlotNoLongerAvailable):
        await book(session_maker, booking_type, clock, start=TUESDAY_9 + timedelta(minutes=10))
    with pytest.raises(SlotNoLongerAvailable):
        await book(session_maker, booking_type, clock, start=datetime(2026, 10, 24, 9, 0, tzinfo=UTC))


@pytest.mark.asyncio
async def test_same_slot_cannot_be_booked_twice(session_maker, booking_type, clock):
    await book(session_maker, booking_type, clock)
    with pytest.raises(SlotNoLongerAvailable):
        await book(session_maker, booking_type, clock, who=guest("Other", "other@example.com"))


@pytest.mark.asyncio
async def test_concurrent_creates_book_exactly_once(session_maker, booking_type, clock, db):
    results = await asyncio.gather(
        *(book(session_maker, booking_type, clock, who=guest(f"G{i}", f"g{i}@example.com")) for i in range(5)),
        return_exceptions=True,
    )
    booked = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, SlotNoLongerAvailable)]
    assert len(booked) == 1
    assert len(conflicts) == 4

    result = await db.execute(select(Appointment).where(Appointment.status == AppointmentStatus.SCHEDULED.value))
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_get_for_guest_checks_token(session_maker, booking_type, clock, db):
    appointment, token = await book(session_maker, booking_type, clock)
    found = await get_appointment_for_guest(db, appointment.id, token)
    assert found.id == appointment.id
    with pytest.raises(InvalidManageToken):
        await get_appointment_for_guest(db, appointment.id, "not-a-token")
    with pytest.raises(InvalidManageToken):
        # Right shape, but a token id that was never issued
        await get_appointment_for_guest(db, appointment.id, create_manage_token(appointment.id, "forged"))
    with pytest.raises(AppointmentNotFound):
        await get_appointment_for_guest(db, 9999, token)


@pytest.mark.asyncio
async def test_token_for_one_appointment_does_not_open_another(session_maker, booking_type, clock, db):
    first, first_token = await book(session_maker, booking_type, clock)
    second, _ = await book(session_maker, booking_type, clock, start=TUESDAY_9 + timedelta(minutes=30))
    with pytest.raises(InvalidManageToken):
        await get_appointment_for_guest(db, second.id, first_token)


@pytest.mark.asyncio
async def test_cancel_then_cancel_again(session_maker, booking_type, clock, db):
    appointment, token = await book(session_maker, booking_type, clock)
    cancelled = await cancel_appointment(session_maker, appointment.id, token, "Conflict came up", clock=clock)
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancel_reason == "Conflict came up"
    assert cancelled.cancelled_at == datetime(2026, 10, 19, 8, 0)

    with pytest.raises(AlreadyCancelled):
        await cancel_appointment(session_maker, appointment.id, token, clock=clock)

    again = await get_appointment_for_guest(db, appointment.id, token)
    assert again.status == AppointmentStatus.CANCELLED
    assert await events(db, appointment.id) == ["created", "cancelled"]


@pytest.mark.asyncio
async def test_cancel_frees_the_slot(session_maker, booking_type, clock):
    appointment, token = await book(session_maker, booking_type, clock)
    await cancel_appointment(session_maker, appointment.id, token, clock=clock)
    rebooked, _ = await book(session_maker, booking_type, clock, who=guest("Next", "next@example.com"))
    assert rebooked.id != appointment.id


@pytest.mark.asyncio
async def test_cancel_with_wrong_token(session_maker, booking_type, clock):
    appointment, _ = await book(session_maker, booking_type, clock)
    with pytest.raises(InvalidManageToken):
        await cancel_appointment(session_maker, appointment.id, "bogus", clock=clock)


@pytest.mark.asyncio
async def test_cancel_after_start_is_past(session_maker, booking_type, clock):
    appointment, token = await book(session_maker, booking_type, clock)
    clock.current = TUESDAY_9 + timedelta(minutes=5)
    with pytest.raises(PastAppointment):
        await cancel_appointment(session_maker, appointment.id, token, clock=clock)


@pytest.mark.asyncio
async def test_reschedule_moves_and_records_history(session_maker, booking_type, clock, db):
    appointment, token = await book(session_maker, booking_type, clock)
    new_start = datetime(2026, 10, 21, 11, 0, tzinfo=UTC)
    moved = await reschedule_appointment(
        session_maker, appointment.id, token, new_start, clock=clock, guest_timezone="Europe/London"
    )
    assert moved.id == appointment.id
    assert moved.status == AppointmentStatus.SCHEDULED
    assert moved.start_time == datetime(2026, 10, 21, 11, 0)
    assert moved.end_time == datetime(2026, 10, 21, 11, 30)
    assert moved.previous_start_time == datetime(2026, 10, 20, 9, 0)
    assert moved.rescheduled_at == datetime(2026, 10, 19, 8, 0)
    assert moved.reschedule_count == 1
    assert moved.guest_timezone == "Europe/London"
    assert await events(db, appointment.id) == ["created", "rescheduled"]

    # The old slot is open again
    await book(session_maker, booking_type, clock, who=guest("Next", "next@example.com"))


@pytest.mark.asyncio
async def test_reschedule_into_overlapping_own_slot(session_maker, booking_type, clock):
    appointment, token = await book(session_maker, booking_type, clock)
    moved = await reschedule_appointment(
        session_maker, appointment.id, token, TUESDAY_9 + timedelta(minutes=30), clock=clock
    )
    assert moved.start_time == datetime(2026, 10, 20, 9, 30)


@pytest.mark.asyncio
async def test_reschedule_into_taken_slot(session_maker, booking_type, clock):
    appointment, token = await book(session_maker, booking_type, clock)
    await book(session_maker, booking_type, clock, start=TUESDAY_9 + timedelta(hours=1), who=guest("B", "b@example.com"))
    with pytest.raises(SlotNoLongerAvailable):
        await reschedule_appointment(
            session_maker, appointment.id, token, TUESDAY_9 + timedelta(hours=1), clock=clock
        )


@pytest.mark.asyncio
async def test_reschedule_rejections(session_maker, booking_type, clock):
    appointment, token = await book(session_maker, booking_type, clock)
    with pytest.raises(InThePast):
        await reschedule_appointment(session_maker, appointment.id, token, clock.now() - timedelta(days=1), clock=clock)
    with pytest.raises(InvalidManageToken):
        await reschedule_appointment(
            session_maker, appointment.id, "bogus", TUESDAY_9 + timedelta(hours=1), clock=clock
        )
    await cancel_appointment(session_maker, appointment.id, token, clock=clock)
    with pytest.raises(AlreadyCancelled):
        await reschedule_appointment(
            session_maker, appointment.id, token, TUESDAY_9 + timedelta(hours=1), clock=clock
        )


@pytest.mark.asyncio
async def test_concurrent_reschedules_into_same_slot(session_maker, booking_type, clock):
    a, a_token = await book(session_maker, booking_type, clock)
    b, b_token = await book(
        session_maker, booking_type, clock, start=TUESDAY_9 + timedelta(minutes=30), who=guest("B", "b@example.com")
    )
    target = TUESDAY_9 + timedelta(hours=2)
    results = await asyncio.gather(
        reschedule_appointment(session_maker, a.id, a_token, target, clock=clock),
        reschedule_appointment(session_maker, b.id, b_token, target, clock=clock),
        return_exceptions=True,
    )
    assert sum(1 for r in results if isinstance(r, Appointment)) == 1
    assert sum(1 for r in results if isinstance(r, SlotNoLongerAvailable)) == 1


@pytest.mark.asyncio
async def test_mark_completed_appointments(session_maker, booking_type, clock, db):
    appointment, token = await book(session_maker, booking_type, clock)
    later, _ = await book(session_maker, booking_type, clock, start=datetime(2026, 10, 23, 9, 0, tzinfo=UTC))

    count = await mark_completed_appointments(db, datetime(2026, 10, 21, 0, 0, tzinfo=UTC))
    await db.commit()
    assert count == 1

    done = await db.get(Appointment, appointment.id, populate_existing=True)
    pending = await db.get(Appointment, later.id, populate_existing=True)
    assert done.status == AppointmentStatus.COMPLETED
    assert pending.status == AppointmentStatus.SCHEDULED
    assert await events(db, appointment.id) == ["created", "completed"]

    with pytest.raises(PastAppointment):
        await cancel_appointment(session_maker, appointment.id, token, clock=clock)

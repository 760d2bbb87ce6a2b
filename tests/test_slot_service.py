"""Tests for open slot and open day listing against stored appointments."""

from datetime import UTC, date, datetime, timedelta

import pytest

from app.core.errors import AvailabilityUnavailable
from app.models.appointment import Appointment, AppointmentStatus
from app.services import appointment_service, slot_service
from app.services.appointment_service import GuestDetails, create_appointment
from app.services.slot_service import get_open_days, get_open_slots

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)


async def _unavailable(*args, **kwargs):
    raise AvailabilityUnavailable()


def stored(booking_type, start, minutes=30, status=AppointmentStatus.SCHEDULED.value):
    return Appointment(
        booking_type_id=booking_type.id,
        host_user_id=booking_type.host_user_id,
        resource_key=booking_type.resource_key,
        start_time=start.replace(tzinfo=None),
        end_time=(start + timedelta(minutes=minutes)).replace(tzinfo=None),
        status=status,
        guest_name="G",
        guest_email="g@example.com",
    )


@pytest.mark.asyncio
async def test_open_slots_skip_stored_appointments(db, booking_type):
    db.add(stored(booking_type, datetime(2026, 10, 20, 10, 0, tzinfo=UTC), minutes=60))
    db.add(stored(booking_type, datetime(2026, 10, 20, 9, 0, tzinfo=UTC), status=AppointmentStatus.CANCELLED.value))
    await db.commit()

    slots = await get_open_slots(db, booking_type, date(2026, 10, 20), NOW)
    assert [s.strftime("%H:%M") for s in slots] == ["09:00", "09:30", "11:00", "11:30"]


@pytest.mark.asyncio
async def test_host_appointments_block_every_booking_type_of_host(db, make_type, host, booking_type):
    other = await make_type(slug="deep-dive", host=host, duration=60, windows=[(1, "09:00", "12:00")])
    db.add(stored(other, datetime(2026, 10, 20, 9, 0, tzinfo=UTC), minutes=60))
    await db.commit()

    slots = await get_open_slots(db, booking_type, date(2026, 10, 20), NOW)
    assert slots[0] == datetime(2026, 10, 20, 10, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_buffers_apply_to_listing(db, make_type):
    bt = await make_type(slug="buffered", windows=[(1, "09:00", "12:00")], buffer_before_minutes=30,
                         buffer_after_minutes=30)
    db.add(stored(bt, datetime(2026, 10, 20, 10, 0, tzinfo=UTC)))
    await db.commit()

    slots = await get_open_slots(db, bt, date(2026, 10, 20), NOW)
    assert [s.strftime("%H:%M") for s in slots] == ["09:00", "11:00", "11:30"]


@pytest.mark.asyncio
async def test_open_days_drop_full_days(db, make_type):
    bt = await make_type(slug="single", duration=60, windows=[(2, "09:00", "10:00")])
    db.add(stored(bt, datetime(2026, 10, 21, 9, 0, tzinfo=UTC), minutes=60))
    await db.commit()

    days = await get_open_days(db, bt, 2026, 10, NOW)
    assert days == [date(2026, 10, 28)]


@pytest.mark.asyncio
async def test_no_windows_means_no_days(db, make_type, caplog):
    bt = await make_type(slug="empty")
    assert await get_open_days(db, bt, 2026, 10, NOW) == []
    assert "no usable availability window" in caplog.text


@pytest.mark.asyncio
async def test_listing_fails_closed(db, booking_type, monkeypatch):
    monkeypatch.setattr(slot_service, "load_busy_intervals", _unavailable)
    assert await get_open_slots(db, booking_type, date(2026, 10, 20), NOW) == []
    assert await get_open_days(db, booking_type, 2026, 10, NOW) == []


@pytest.mark.asyncio
async def test_booking_refused_when_appointments_cannot_be_read(session_maker, booking_type, clock, monkeypatch):
    monkeypatch.setattr(appointment_service, "load_busy_intervals", _unavailable)
    with pytest.raises(AvailabilityUnavailable):
        await create_appointment(
            session_maker,
            booking_type,
            datetime(2026, 10, 20, 9, 0, tzinfo=UTC),
            GuestDetails(name="Sam", email="sam@example.com"),
            clock=clock,
        )

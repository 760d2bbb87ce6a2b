import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AvailabilityUnavailable
from app.models.appointment import Appointment, AppointmentStatus
from app.services.calendar_utils import as_utc, to_naive_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open [a_start, a_end) vs [b_start, b_end); touching ends do not overlap."""
    return a_start < b_end and b_start < a_end


def filter_conflicts(
    candidates: Iterable[datetime],
    duration_minutes: int,
    busy: Sequence[BusyInterval],
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> list[datetime]:
    """Candidates whose [start, start + duration) is clear of every busy interval.

    Busy intervals are widened by the buffers before the comparison.
    """
    duration = timedelta(minutes=duration_minutes)
    before = timedelta(minutes=buffer_before_minutes)
    after = timedelta(minutes=buffer_after_minutes)
    blocked = [(as_utc(b.start) - before, as_utc(b.end) + after) for b in busy]
    free: list[datetime] = []
    for start in candidates:
        start = as_utc(start)
        end = start + duration
        if not any(overlaps(start, end, b_start, b_end) for b_start, b_end in blocked):
            free.append(start)
    return free


def busy_query_window(
    candidates: Sequence[datetime],
    duration_minutes: int,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> tuple[datetime, datetime]:
    """Range an appointment must intersect to be able to block any candidate."""
    first = min(candidates)
    last = max(candidates)
    return (
        first - timedelta(minutes=buffer_after_minutes),
        last + timedelta(minutes=duration_minutes + buffer_before_minutes),
    )


async def load_busy_intervals(
    session: AsyncSession,
    resource_key: str,
    window_start: datetime,
    window_end: datetime,
    exclude_appointment_id: int | None = None,
) -> list[BusyInterval]:
    """Non-cancelled appointments of a bookable entity intersecting [window_start, window_end).

    Raises AvailabilityUnavailable when storage cannot answer, so callers fail closed.
    """
    q = select(Appointment.start_time, Appointment.end_time).where(
        Appointment.resource_key == resource_key,
        Appointment.status != AppointmentStatus.CANCELLED.value,
        Appointment.start_time < to_naive_utc(window_end),
        Appointment.end_time > to_naive_utc(window_start),
    )
    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != exclude_appointment_id)
    try:
        result = await session.execute(q)
    except SQLAlchemyError as e:
        logger.exception("Loading busy intervals for %s failed: %s", resource_key, e)
        raise AvailabilityUnavailable() from e
    return [BusyInterval(start=as_utc(start), end=as_utc(end)) for start, end in result.all()]

"""Candidate slot generation from a booking type's weekly availability.

Pure functions over AvailabilityRules; no database access. Dates passed in
are calendar dates in the booking type's (host) timezone and every returned
instant is aware UTC.
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from app.models.booking_type import AvailabilityWindow, BookingType
from app.services.calendar_utils import (
    as_utc,
    get_zone,
    local_date,
    local_wall_end_to_utc,
    local_wall_to_utc,
    month_dates,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeeklyWindow:
    weekday: int  # 0 = Monday
    start: time
    end: time


@dataclass(frozen=True)
class AvailabilityRules:
    duration_minutes: int
    timezone: str
    windows: tuple[WeeklyWindow, ...]
    min_notice_minutes: int = 0
    max_future_days: int | None = None

    @classmethod
    def from_booking_type(
        cls, booking_type: BookingType, windows: Iterable[AvailabilityWindow]
    ) -> "AvailabilityRules":
        return cls(
            duration_minutes=booking_type.duration_minutes,
            timezone=booking_type.timezone,
            windows=tuple(
                WeeklyWindow(weekday=w.weekday, start=w.start_time, end=w.end_time)
                for w in windows
            ),
            min_notice_minutes=booking_type.min_notice_minutes or 0,
            max_future_days=booking_type.max_future_days,
        )

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)


def windows_for_weekday(rules: AvailabilityRules, weekday: int) -> list[WeeklyWindow]:
    return sorted(
        (w for w in rules.windows if w.weekday == weekday and w.end > w.start),
        key=lambda w: w.start,
    )


def has_usable_window(rules: AvailabilityRules) -> bool:
    """False when no weekday window can hold a single slot."""
    if rules.duration_minutes <= 0 or get_zone(rules.timezone) is None:
        return False
    for w in rules.windows:
        start = datetime.combine(date.min, w.start)
        end = datetime.combine(date.min, w.end)
        if end - start >= rules.duration:
            return True
    return False


def _bounds(rules: AvailabilityRules, now: datetime | None) -> tuple[datetime | None, datetime | None]:
    if now is None:
        return None, None
    now = as_utc(now)
    earliest = now + timedelta(minutes=rules.min_notice_minutes)
    latest = now + timedelta(days=rules.max_future_days) if rules.max_future_days is not None else None
    return earliest, latest


def candidate_slots(rules: AvailabilityRules, day: date, now: datetime | None = None) -> list[datetime]:
    """Slot starts for one host-zone date, ascending.

    Slots are laid out back to back from each window start while the slot
    still ends inside the window. Anything at or before now (plus minimum
    notice) is dropped, as is anything past the booking horizon.
    """
    zone = get_zone(rules.timezone)
    if zone is None:
        logger.warning("Unknown timezone %r in availability rules", rules.timezone)
        return []
    if rules.duration_minutes <= 0:
        return []
    earliest, latest = _bounds(rules, now)
    step = rules.duration
    found: set[datetime] = set()
    for window in windows_for_weekday(rules, day.weekday()):
        current = datetime.combine(day, window.start)
        window_end = datetime.combine(day, window.end)
        # Wall-clock stride can straddle a DST gap; fit and spacing are checked in real time too
        end_instant = local_wall_end_to_utc(day, window.end, zone)
        previous: datetime | None = None
        while current + step <= window_end:
            instant = local_wall_to_utc(day, current.time(), zone)
            current += step
            if instant is None or instant + step > end_instant:
                continue
            if previous is not None and instant < previous + step:
                continue
            previous = instant
            if earliest is not None and instant <= earliest:
                continue
            if latest is not None and instant > latest:
                continue
            found.add(instant)
    return sorted(found)


def available_days(
    rules: AvailabilityRules, year: int, month: int, now: datetime | None = None
) -> list[date]:
    return list(candidates_for_month(rules, year, month, now))


def candidates_for_month(
    rules: AvailabilityRules, year: int, month: int, now: datetime | None = None
) -> dict[date, list[datetime]]:
    """Candidate slots per date, only for dates that have any."""
    out: dict[date, list[datetime]] = {}
    for d in month_dates(year, month):
        slots = candidate_slots(rules, d, now)
        if slots:
            out[d] = slots
    return out


def is_offered(rules: AvailabilityRules, instant: datetime, now: datetime | None = None) -> bool:
    """Whether an instant is currently one of the generated slot starts."""
    zone = get_zone(rules.timezone)
    if zone is None:
        return False
    instant = as_utc(instant)
    return instant in candidate_slots(rules, local_date(instant, zone), now)

"""Date math helpers shared by the resolver, the API and email rendering.

Instants are aware UTC datetimes everywhere outside the database layer; the
models store naive UTC, so use to_naive_utc/as_utc at that boundary.
"""
import calendar
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

_LOCALTIME = Path("/etc/localtime")

INSTANT_FORMATS = {
    "date": "%A, %B %d, %Y",
    "time": "%I:%M %p",
    "datetime": "%A, %B %d, %Y %I:%M %p",
    "short": "%b %d, %I:%M %p",
}


@dataclass(frozen=True)
class MonthGrid:
    count: int
    first_weekday_index: int  # 0 = Sunday


def days_in_month(year: int, month: int) -> MonthGrid:
    first_weekday, count = calendar.monthrange(year, month)
    # monthrange counts Monday as 0; the grid starts its weeks on Sunday
    return MonthGrid(count=count, first_weekday_index=(first_weekday + 1) % 7)


def month_dates(year: int, month: int) -> list[date]:
    first = date(year, month, 1)
    return [first + timedelta(days=i) for i in range(days_in_month(year, month).count)]


def get_zone(name: str | None) -> ZoneInfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def is_valid_zone(name: str | None) -> bool:
    return get_zone(name) is not None


def as_utc(dt: datetime) -> datetime:
    """Aware UTC from a naive-UTC (database) or aware datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def local_wall_to_utc(day: date, wall: time, zone: ZoneInfo) -> datetime | None:
    """Instant of a wall-clock time on a date, using that date's offset.

    Returns None when the wall time does not exist (skipped by a DST gap).
    Ambiguous times resolve to their first occurrence.
    """
    local = datetime.combine(day, wall, tzinfo=zone)
    instant = local.astimezone(UTC)
    if instant.astimezone(zone).replace(tzinfo=None) != local.replace(tzinfo=None):
        return None
    return instant


def local_wall_end_to_utc(day: date, wall: time, zone: ZoneInfo) -> datetime:
    """Instant a window ending at this wall time closes; a gap time takes its earlier reading."""
    instant = local_wall_to_utc(day, wall, zone)
    if instant is not None:
        return instant
    local = datetime.combine(day, wall, tzinfo=zone)
    return min(local.astimezone(UTC), local.replace(fold=1).astimezone(UTC))


def local_date(instant: datetime, zone: ZoneInfo) -> date:
    return as_utc(instant).astimezone(zone).date()


def format_instant(instant: datetime, zone_name: str, style: str = "datetime") -> str:
    """Render an instant in a zone. Unknown zones render as the zone name itself."""
    zone = get_zone(zone_name)
    if zone is None:
        return zone_name
    local = as_utc(instant).astimezone(zone)
    text = local.strftime(INSTANT_FORMATS.get(style, INSTANT_FORMATS["datetime"]))
    if style == "date":
        return text
    return f"{text} ({zone_name})"


def detect_local_zone(environ: Mapping[str, str] | None = None) -> str:
    """Zone configured for this environment. Display default only."""
    env = os.environ if environ is None else environ
    name = env.get("TZ", "").lstrip(":")
    if is_valid_zone(name):
        return name
    try:
        target = str(_LOCALTIME.resolve())
    except OSError:
        target = ""
    if "zoneinfo/" in target:
        name = target.split("zoneinfo/", 1)[1]
        if is_valid_zone(name):
            return name
    logger.debug("No local timezone configured, defaulting to UTC")
    return "UTC"

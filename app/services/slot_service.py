import logging
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AvailabilityUnavailable
from app.models.booking_type import BookingType
from app.services.availability_service import (
    AvailabilityRules,
    candidate_slots,
    candidates_for_month,
    has_usable_window,
)
from app.services.booking_type_service import load_rules
from app.services.conflict_service import busy_query_window, filter_conflicts, load_busy_intervals

logger = logging.getLogger(__name__)


def _warn_if_unusable(booking_type: BookingType, rules: AvailabilityRules) -> None:
    if not has_usable_window(rules):
        logger.warning(
            "Booking type %s (%s) has no usable availability window; no times will be offered",
            booking_type.id,
            booking_type.slug,
        )


async def get_open_slots(
    session: AsyncSession, booking_type: BookingType, day: date, now: datetime
) -> list[datetime]:
    """Bookable slot starts (aware UTC) for a host-zone date.

    Fails closed: if existing appointments cannot be loaded, nothing is offered.
    """
    rules = await load_rules(session, booking_type)
    _warn_if_unusable(booking_type, rules)
    candidates = candidate_slots(rules, day, now)
    if not candidates:
        return []
    window_start, window_end = busy_query_window(
        candidates,
        booking_type.duration_minutes,
        booking_type.buffer_before_minutes,
        booking_type.buffer_after_minutes,
    )
    try:
        busy = await load_busy_intervals(session, booking_type.resource_key, window_start, window_end)
    except AvailabilityUnavailable:
        return []
    return filter_conflicts(
        candidates,
        booking_type.duration_minutes,
        busy,
        booking_type.buffer_before_minutes,
        booking_type.buffer_after_minutes,
    )


async def get_open_days(
    session: AsyncSession, booking_type: BookingType, year: int, month: int, now: datetime
) -> list[date]:
    """Host-zone dates of a month with at least one open slot, from a single appointment query."""
    rules = await load_rules(session, booking_type)
    _warn_if_unusable(booking_type, rules)
    per_day = candidates_for_month(rules, year, month, now)
    if not per_day:
        return []
    every = [s for slots in per_day.values() for s in slots]
    window_start, window_end = busy_query_window(
        every,
        booking_type.duration_minutes,
        booking_type.buffer_before_minutes,
        booking_type.buffer_after_minutes,
    )
    try:
        busy = await load_busy_intervals(session, booking_type.resource_key, window_start, window_end)
    except AvailabilityUnavailable:
        return []
    return [
        d
        for d, slots in per_day.items()
        if filter_conflicts(
            slots,
            booking_type.duration_minutes,
            busy,
            booking_type.buffer_before_minutes,
            booking_type.buffer_after_minutes,
        )
    ]

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BookingTypeNotFound
from app.models.agency import Agency, HostUser
from app.models.booking_type import AvailabilityWindow, BookingType
from app.services.availability_service import AvailabilityRules


@dataclass
class ResolvedBookingType:
    booking_type: BookingType
    host: HostUser | None
    agency: Agency | None


async def get_host_by_slug(session: AsyncSession, booking_slug: str) -> HostUser | None:
    result = await session.execute(
        select(HostUser).where(HostUser.booking_slug == booking_slug, HostUser.is_active == True)  # noqa: E712
    )
    return result.scalar_one_or_none()


async def resolve_booking_type(
    session: AsyncSession, slug: str, host_slug: str | None = None
) -> ResolvedBookingType:
    """Active booking type by slug, optionally addressed through its host's slug."""
    result = await session.execute(
        select(BookingType).where(BookingType.slug == slug, BookingType.is_active == True)  # noqa: E712
    )
    booking_type = result.scalar_one_or_none()
    if not booking_type:
        raise BookingTypeNotFound()
    host: HostUser | None = None
    if host_slug is not None:
        host = await get_host_by_slug(session, host_slug)
        if not host or host.agency_id != booking_type.agency_id:
            raise BookingTypeNotFound()
        if booking_type.host_user_id is not None and booking_type.host_user_id != host.id:
            raise BookingTypeNotFound()
    elif booking_type.host_user_id is not None:
        host = await session.get(HostUser, booking_type.host_user_id)
        if host is not None and not host.is_active:
            raise BookingTypeNotFound()
    agency = await session.get(Agency, booking_type.agency_id)
    return ResolvedBookingType(booking_type=booking_type, host=host, agency=agency)


async def get_windows(session: AsyncSession, booking_type_id: int) -> list[AvailabilityWindow]:
    result = await session.execute(
        select(AvailabilityWindow)
        .where(AvailabilityWindow.booking_type_id == booking_type_id)
        .order_by(AvailabilityWindow.weekday, AvailabilityWindow.start_time)
    )
    return list(result.scalars().all())


async def load_rules(session: AsyncSession, booking_type: BookingType) -> AvailabilityRules:
    windows = await get_windows(session, booking_type.id)
    return AvailabilityRules.from_booking_type(booking_type, windows)

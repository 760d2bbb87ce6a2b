from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, system_clock
from app.core.db import async_session_maker, get_session
from app.services.calendar_utils import detect_local_zone

__all__ = ["get_session", "get_session_maker", "get_clock", "get_zone_resolver"]


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory for writes that manage their own transaction."""
    return async_session_maker


def get_clock() -> Clock:
    return system_clock


def get_zone_resolver() -> Callable[[], str]:
    return detect_local_zone

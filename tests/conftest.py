"""Shared test fixtures for the booking API tests.

Each test gets its own SQLite file through aiosqlite so sessions opened by
the write paths see each other's commits.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-bootstrap.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["ENV"] = "test"

from datetime import UTC, datetime, time

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import app.models  # noqa: F401 - register tables
from app.api.deps import get_clock, get_session, get_session_maker, get_zone_resolver
from app.core.clock import Clock
from app.main import app
from app.models.agency import Agency, HostUser
from app.models.booking_type import AvailabilityWindow, BookingType


class FixedClock(Clock):
    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


@pytest.fixture
def clock():
    # Monday 2026-10-19 08:00 UTC
    return FixedClock(datetime(2026, 10, 19, 8, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    """Direct DB session for test setup/assertions."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def agency(db):
    agency = Agency(name="Acme Advisors", logo="https://example.com/logo.png", primary_color="#0f766e")
    db.add(agency)
    await db.commit()
    await db.refresh(agency)
    return agency


@pytest_asyncio.fixture
async def host(db, agency):
    host = HostUser(agency_id=agency.id, name="Dana Host", email="dana@example.com", booking_slug="dana")
    db.add(host)
    await db.commit()
    await db.refresh(host)
    return host


async def make_booking_type(db, agency, *, slug="intro", host=None, timezone="UTC",
                            duration=30, windows=None, **fields):
    """Booking type with weekly windows given as (weekday, "HH:MM", "HH:MM")."""
    bt = BookingType(
        agency_id=agency.id,
        host_user_id=host.id if host else None,
        slug=slug,
        name=fields.pop("name", "Intro Call"),
        duration_minutes=duration,
        timezone=timezone,
        **fields,
    )
    db.add(bt)
    await db.flush()
    for weekday, start, end in windows or []:
        db.add(
            AvailabilityWindow(
                booking_type_id=bt.id,
                weekday=weekday,
                start_time=time.fromisoformat(start),
                end_time=time.fromisoformat(end),
            )
        )
    await db.commit()
    await db.refresh(bt)
    return bt


@pytest_asyncio.fixture
async def booking_type(db, agency, host):
    """Weekdays 09:00-12:00 UTC, 30 minute slots, owned by the host."""
    return await make_booking_type(
        db,
        agency,
        host=host,
        meeting_link="https://meet.example.com/dana",
        windows=[(d, "09:00", "12:00") for d in range(5)],
    )


@pytest_asyncio.fixture
async def client(session_maker, clock):
    """Async HTTP test client."""

    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_zone_resolver] = lambda: (lambda: "Europe/Berlin")
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_type(db, agency):
    async def _make(**kw):
        return await make_booking_type(db, agency, **kw)

    return _make

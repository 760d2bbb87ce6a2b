from datetime import UTC, datetime, time

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class BookingType(SQLModel, table=True):
    __tablename__ = "booking_types"
    id: int | None = Field(default=None, primary_key=True)
    agency_id: int = Field(foreign_key="agencies.id", index=True)
    host_user_id: int | None = Field(default=None, foreign_key="host_users.id", index=True)
    slug: str = Field(unique=True, index=True)
    name: str
    description: str | None = None
    color: str | None = None
    duration_minutes: int = 30
    timezone: str = "UTC"  # IANA zone the availability windows are expressed in
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    min_notice_minutes: int = 0
    max_future_days: int | None = None
    meeting_link: str | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=sa.DateTime())

    @property
    def resource_key(self) -> str:
        """Bookable entity that conflicts and locks are scoped to."""
        if self.host_user_id is not None:
            return f"host:{self.host_user_id}"
        return f"booking_type:{self.id}"


class AvailabilityWindow(SQLModel, table=True):
    __tablename__ = "availability_windows"
    id: int | None = Field(default=None, primary_key=True)
    booking_type_id: int = Field(foreign_key="booking_types.id", index=True)
    weekday: int = Field(ge=0, le=6)  # 0 = Monday, as date.weekday()
    start_time: time
    end_time: time

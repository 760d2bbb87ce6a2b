from datetime import UTC, datetime
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    # At most one active appointment per bookable entity and start instant
    __table_args__ = (
        sa.Index(
            "uq_appointments_active_slot",
            "resource_key",
            "start_time",
            unique=True,
            postgresql_where=sa.text("status = 'SCHEDULED'"),
            sqlite_where=sa.text("status = 'SCHEDULED'"),
        ),
    )
    id: int | None = Field(default=None, primary_key=True)
    booking_type_id: int = Field(foreign_key="booking_types.id", index=True)
    host_user_id: int | None = Field(default=None, foreign_key="host_users.id", index=True)
    resource_key: str = Field(index=True)
    # Naive UTC throughout; plain DateTime columns bind naive values as given
    start_time: datetime = Field(index=True, sa_type=sa.DateTime())
    end_time: datetime = Field(sa_type=sa.DateTime())
    status: AppointmentStatus = Field(
        default=AppointmentStatus.SCHEDULED, sa_type=sa.String(16), index=True
    )
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    guest_company: str | None = None
    notes: str | None = None
    guest_timezone: str | None = None
    meeting_link: str | None = None
    manage_token_id: str = Field(default="")
    cancelled_at: datetime | None = Field(default=None, sa_type=sa.DateTime())
    cancel_reason: str | None = None
    previous_start_time: datetime | None = Field(default=None, sa_type=sa.DateTime())
    rescheduled_at: datetime | None = Field(default=None, sa_type=sa.DateTime())
    reschedule_count: int = 0
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=sa.DateTime())
    updated_at: datetime = Field(default_factory=_utc_naive_now, sa_type=sa.DateTime())


class AppointmentEvent(SQLModel, table=True):
    """Audit trail row written in the same transaction as a transition."""

    __tablename__ = "appointment_events"
    id: int | None = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    action: str  # created | cancelled | rescheduled | completed
    from_start: datetime | None = Field(default=None, sa_type=sa.DateTime())
    to_start: datetime | None = Field(default=None, sa_type=sa.DateTime())
    reason: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=sa.DateTime())

"""Initial schema: agencies, hosts, booking types, availability, appointments.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "agencies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("logo", sa.String(), nullable=True),
        sa.Column("primary_color", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "host_users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agency_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("booking_slug", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_host_users_agency_id"), "host_users", ["agency_id"], unique=False)
    op.create_index(op.f("ix_host_users_booking_slug"), "host_users", ["booking_slug"], unique=True)

    op.create_table(
        "booking_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agency_id", sa.Integer(), nullable=False),
        sa.Column("host_user_id", sa.Integer(), nullable=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("color", sa.String(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("buffer_before_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buffer_after_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_notice_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_future_days", sa.Integer(), nullable=True),
        sa.Column("meeting_link", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.ForeignKeyConstraint(["host_user_id"], ["host_users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_booking_types_agency_id"), "booking_types", ["agency_id"], unique=False)
    op.create_index(op.f("ix_booking_types_host_user_id"), "booking_types", ["host_user_id"], unique=False)
    op.create_index(op.f("ix_booking_types_slug"), "booking_types", ["slug"], unique=True)

    op.create_table(
        "availability_windows",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_type_id", sa.Integer(), nullable=False),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.ForeignKeyConstraint(["booking_type_id"], ["booking_types.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_availability_windows_booking_type_id"), "availability_windows", ["booking_type_id"], unique=False
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_type_id", sa.Integer(), nullable=False),
        sa.Column("host_user_id", sa.Integer(), nullable=True),
        sa.Column("resource_key", sa.String(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="SCHEDULED"),
        sa.Column("guest_name", sa.String(), nullable=False),
        sa.Column("guest_email", sa.String(), nullable=False),
        sa.Column("guest_phone", sa.String(), nullable=True),
        sa.Column("guest_company", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("guest_timezone", sa.String(), nullable=True),
        sa.Column("meeting_link", sa.String(), nullable=True),
        sa.Column("manage_token_id", sa.String(), nullable=False, server_default=""),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.String(), nullable=True),
        sa.Column("previous_start_time", sa.DateTime(), nullable=True),
        sa.Column("rescheduled_at", sa.DateTime(), nullable=True),
        sa.Column("reschedule_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["booking_type_id"], ["booking_types.id"]),
        sa.ForeignKeyConstraint(["host_user_id"], ["host_users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_appointments_booking_type_id"), "appointments", ["booking_type_id"], unique=False)
    op.create_index(op.f("ix_appointments_host_user_id"), "appointments", ["host_user_id"], unique=False)
    op.create_index(op.f("ix_appointments_resource_key"), "appointments", ["resource_key"], unique=False)
    op.create_index(op.f("ix_appointments_start_time"), "appointments", ["start_time"], unique=False)
    op.create_index(op.f("ix_appointments_status"), "appointments", ["status"], unique=False)
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["resource_key", "start_time"],
        unique=True,
        postgresql_where=sa.text("status = 'SCHEDULED'"),
        sqlite_where=sa.text("status = 'SCHEDULED'"),
    )

    op.create_table(
        "appointment_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("from_start", sa.DateTime(), nullable=True),
        sa.Column("to_start", sa.DateTime(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_appointment_events_appointment_id"), "appointment_events", ["appointment_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_appointment_events_appointment_id"), table_name="appointment_events")
    op.drop_table("appointment_events")
    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    op.drop_index(op.f("ix_appointments_status"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_start_time"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_resource_key"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_host_user_id"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_booking_type_id"), table_name="appointments")
    op.drop_table("appointments")
    op.drop_index(op.f("ix_availability_windows_booking_type_id"), table_name="availability_windows")
    op.drop_table("availability_windows")
    op.drop_index(op.f("ix_booking_types_slug"), table_name="booking_types")
    op.drop_index(op.f("ix_booking_types_host_user_id"), table_name="booking_types")
    op.drop_index(op.f("ix_booking_types_agency_id"), table_name="booking_types")
    op.drop_table("booking_types")
    op.drop_index(op.f("ix_host_users_booking_slug"), table_name="host_users")
    op.drop_index(op.f("ix_host_users_agency_id"), table_name="host_users")
    op.drop_table("host_users")
    op.drop_table("agencies")

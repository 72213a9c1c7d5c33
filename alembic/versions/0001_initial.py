"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "doctors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("specialization", sa.Text()),
        sa.Column("consultation_fee", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "availability",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default=sa.text("'video'")),
        sa.Column("time_slots", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("doctor_id", "date", "type"),
    )

    op.create_table(
        "slot_states",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'free'")),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("hold_id", sa.Text()),
        sa.Column("booking_id", sa.Integer()),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint("doctor_id", "date", "time"),
    )

    op.create_table(
        "holds",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default=sa.text("'video'")),
        sa.Column("holder_id", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("closed_at", sa.DateTime()),
        sa.Column("booking_id", sa.Integer()),
    )
    op.create_index(
        "uq_holds_active_slot",
        "holds",
        ["doctor_id", "date", "time"],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("appointment_number", sa.Text(), nullable=False, unique=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("patient_id", sa.Text(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default=sa.text("'video'")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("source", sa.Text(), nullable=False, server_default=sa.text("'hold'")),
        sa.Column("hold_id", sa.Text()),
        sa.Column("patient_name", sa.Text()),
        sa.Column("date_of_birth", sa.Text()),
        sa.Column("gender", sa.Text()),
        sa.Column("problem", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("consultation_fee", sa.Float()),
        sa.Column("cancel_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "uq_bookings_occupied_slot",
        "bookings",
        ["doctor_id", "date", "time"],
        unique=True,
        sqlite_where=sa.text("status IN ('confirmed', 'completed')"),
        postgresql_where=sa.text("status IN ('confirmed', 'completed')"),
    )


def downgrade() -> None:
    op.drop_index("uq_bookings_occupied_slot", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("uq_holds_active_slot", table_name="holds")
    op.drop_table("holds")
    op.drop_table("slot_states")
    op.drop_table("availability")
    op.drop_table("doctors")

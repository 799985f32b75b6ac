"""Initial schema: shows, seats, holds, bookings, payments, webhook ledger, job leases.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Shows table
    op.create_table(
        "shows",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("movie_id", sa.String(36), nullable=False),
        sa.Column("screen_id", sa.String(36), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_shows_movie_id", "shows", ["movie_id"])
    op.create_index("ix_shows_screen_id", "shows", ["screen_id"])
    op.create_index("ix_shows_start_time", "shows", ["start_time"])

    # Show seats: the rows locked FOR UPDATE during booking
    op.create_table(
        "show_seats",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("show_id", sa.String(36), sa.ForeignKey("shows.id"), nullable=False),
        sa.Column("seat_label", sa.String(16), nullable=False),
        sa.Column("tier", sa.String(16), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("show_id", "seat_label", name="uq_show_seat_label"),
        sa.CheckConstraint("price >= 0", name="check_show_seat_price_non_negative"),
    )
    op.create_index("ix_show_seats_show_id", "show_seats", ["show_id"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("show_id", sa.String(36), sa.ForeignKey("shows.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_ref", sa.String(128), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_show_id", "bookings", ["show_id"])
    # Doubles as the idempotency key for booking creation
    op.create_index("ix_bookings_payment_ref", "bookings", ["payment_ref"], unique=True)
    # Sweeper query: WHERE status = 'PENDING' AND expires_at < now()
    op.create_index("ix_bookings_status_expires_at", "bookings", ["status", "expires_at"])

    op.create_table(
        "booking_seats",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("show_seat_id", sa.String(36), sa.ForeignKey("show_seats.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("booking_id", "show_seat_id", name="uq_booking_seat"),
    )
    op.create_index("ix_booking_seats_booking_id", "booking_seats", ["booking_id"])
    op.create_index("ix_booking_seats_show_seat_id", "booking_seats", ["show_seat_id"])

    op.create_table(
        "seat_holds",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("show_seat_id", sa.String(36), sa.ForeignKey("show_seats.id"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_seat_holds_show_seat_id", "seat_holds", ["show_seat_id"])
    op.create_index("ix_seat_holds_user_id", "seat_holds", ["user_id"])
    op.create_index("ix_seat_holds_expires_at", "seat_holds", ["expires_at"])

    # Payments table
    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("reference", sa.String(128), nullable=False),
        sa.Column("gateway_ref", sa.String(128), nullable=True),
        sa.Column("gateway_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("reference", name="uq_payments_reference"),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_user_id", "payments", ["user_id"])

    # Webhook ledger: one row per processed (session, event type)
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(128), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("session_id", "event_type", name="uq_webhook_session_event"),
    )

    op.create_table(
        "job_locks",
        sa.Column("name", sa.String(64), primary_key=True),
        sa.Column("holder", sa.String(64), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("job_locks")
    op.drop_table("webhook_events")
    op.drop_table("payments")
    op.drop_table("seat_holds")
    op.drop_table("booking_seats")
    op.drop_table("bookings")
    op.drop_table("show_seats")
    op.drop_table("shows")

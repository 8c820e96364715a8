"""Change notification triggers for room_availability and bookings.

Revision ID: 002_change_notifications
Revises: 001_initial_schema
Create Date: 2026-10-01
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_change_notifications"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "002_change_notifications.sql"


def upgrade() -> None:
    # exec_driver_sql keeps the $$ function bodies intact.
    op.get_bind().exec_driver_sql(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_bookings_notify ON bookings")
    op.execute("DROP TRIGGER IF EXISTS trg_room_availability_notify ON room_availability")
    op.execute("DROP FUNCTION IF EXISTS notify_booking_change()")
    op.execute("DROP FUNCTION IF EXISTS notify_room_availability_change()")

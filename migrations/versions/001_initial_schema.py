"""Initial schema: rooms, users, ledger and bookings.

bookings carries the no_active_booking_overlap exclusion constraint, which
rejects two pending/confirmed bookings of one room with intersecting
[check_in_date, check_out_date) ranges even if admission is bypassed.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-01
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_initial.sql"


def upgrade() -> None:
    op.get_bind().exec_driver_sql(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    raise NotImplementedError("Downgrade not supported")

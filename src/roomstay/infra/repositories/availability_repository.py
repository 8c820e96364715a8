"""Availability ledger repository (room_availability table).

Uses raw SQL with psycopg2 (no ORM).
"""

from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from roomstay.domain.models import DayStatus, RoomDayStatus


def _row_to_day_status(row: tuple) -> RoomDayStatus:
    return RoomDayStatus(
        room_id=str(row[0]),
        date=row[1],
        status=DayStatus(row[2]),
        price_override=Decimal(row[3]) if row[3] is not None else None,
    )


def list_day_statuses(
    cur: PgCursor,
    *,
    room_id: str,
    start: date,
    end: date,
) -> list[RoomDayStatus]:
    """List ledger rows for a room between start and end, both inclusive."""
    cur.execute(
        """
        SELECT room_id, date, status, price_override
        FROM room_availability
        WHERE room_id = %s
          AND date >= %s
          AND date <= %s
        ORDER BY date
        """,
        (room_id, start, end),
    )
    return [_row_to_day_status(row) for row in cur.fetchall()]


def upsert_day_status(cur: PgCursor, row: RoomDayStatus) -> RoomDayStatus:
    """Insert or replace the ledger row keyed by (room_id, date).

    Status and price_override are replaced together in one row write.
    """
    cur.execute(
        """
        INSERT INTO room_availability (room_id, date, status, price_override)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (room_id, date) DO UPDATE
        SET status = EXCLUDED.status,
            price_override = EXCLUDED.price_override,
            updated_at = now()
        RETURNING room_id, date, status, price_override
        """,
        (row.room_id, row.date, row.status.value, row.price_override),
    )
    return _row_to_day_status(cur.fetchone())


def delete_day_status(cur: PgCursor, *, room_id: str, day: date) -> bool:
    """Remove the ledger row for (room_id, day).

    Returns:
        True if a row was deleted.
    """
    cur.execute(
        "DELETE FROM room_availability WHERE room_id = %s AND date = %s",
        (room_id, day),
    )
    return cur.rowcount > 0

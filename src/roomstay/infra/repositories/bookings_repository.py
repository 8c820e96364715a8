"""Bookings repository - persistence for reservation records.

Uses raw SQL with psycopg2 (no ORM). Overlap between active bookings of
the same room is rejected by the no_active_booking_overlap exclusion
constraint; callers translate psycopg2.errors.ExclusionViolation.
"""

from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from roomstay.domain.models import ACTIVE_STATUSES, Reservation, ReservationStatus

_BOOKING_COLUMNS = """
    id, room_id, user_id, guest_name, guest_email, guest_phone,
    guests_count, special_requests, check_in_date, check_out_date,
    status, total_price, idempotency_key, created_at
"""


def _row_to_reservation(row: tuple) -> Reservation:
    return Reservation(
        id=str(row[0]),
        room_id=str(row[1]),
        user_id=str(row[2]) if row[2] is not None else None,
        guest_name=row[3],
        guest_email=row[4],
        guest_phone=row[5],
        guests_count=row[6],
        special_requests=row[7],
        check_in_date=row[8],
        check_out_date=row[9],
        status=ReservationStatus(row[10]),
        total_price=Decimal(row[11]),
        idempotency_key=row[12],
        created_at=row[13],
    )


def list_active_bookings(
    cur: PgCursor,
    *,
    room_id: str,
    start: date,
    end: date,
) -> list[Reservation]:
    """List active bookings whose stay intersects [start, end).

    Overlap formula: check_in_date < end AND check_out_date > start.
    """
    cur.execute(
        f"""
        SELECT {_BOOKING_COLUMNS}
        FROM bookings
        WHERE room_id = %s
          AND status = ANY(%s)
          AND check_in_date < %s
          AND check_out_date > %s
        ORDER BY check_in_date
        """,
        (room_id, [s.value for s in ACTIVE_STATUSES], end, start),
    )
    return [_row_to_reservation(row) for row in cur.fetchall()]


def get_booking_by_idempotency_key(cur: PgCursor, user_id: str, idempotency_key: str) -> Reservation | None:
    """Booking created by user_id under idempotency_key, if any.

    Keys are unique per user; another caller's booking is never returned.
    """
    cur.execute(
        f"SELECT {_BOOKING_COLUMNS} FROM bookings WHERE user_id = %s AND idempotency_key = %s",
        (user_id, idempotency_key),
    )
    row = cur.fetchone()
    return _row_to_reservation(row) if row is not None else None


def insert_booking(
    cur: PgCursor,
    *,
    room_id: str,
    user_id: str,
    guest_name: str,
    guest_email: str,
    guest_phone: str,
    guests_count: int,
    special_requests: str | None,
    check_in_date: date,
    check_out_date: date,
    total_price: Decimal,
    idempotency_key: str,
) -> tuple[Reservation, bool]:
    """Insert a pending booking, idempotent via UNIQUE(user_id, idempotency_key).

    Uses ON CONFLICT DO NOTHING so that a retried request returns the row
    written by the first attempt instead of creating a second booking.

    Returns:
        Tuple of (reservation, created).
        - created: True if newly inserted, False if the caller already used the key.

    Raises:
        psycopg2.errors.ExclusionViolation: If the stay overlaps another
            active booking of the same room.
    """
    cur.execute(
        f"""
        INSERT INTO bookings (
            room_id, user_id, guest_name, guest_email, guest_phone,
            guests_count, special_requests, check_in_date, check_out_date,
            status, total_price, idempotency_key
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id, idempotency_key) DO NOTHING
        RETURNING {_BOOKING_COLUMNS}
        """,
        (
            room_id,
            user_id,
            guest_name,
            guest_email,
            guest_phone,
            guests_count,
            special_requests,
            check_in_date,
            check_out_date,
            ReservationStatus.PENDING.value,
            total_price,
            idempotency_key,
        ),
    )
    row = cur.fetchone()
    if row is not None:
        return _row_to_reservation(row), True

    existing = get_booking_by_idempotency_key(cur, user_id, idempotency_key)
    if existing is None:
        # Conflicting row vanished between INSERT and SELECT; bookings are
        # never deleted, so this indicates a store-level problem.
        raise RuntimeError(f"Booking for idempotency key {idempotency_key} disappeared")
    return existing, False


def list_bookings(
    cur: PgCursor,
    *,
    room_id: str | None = None,
    status: ReservationStatus | None = None,
    limit: int = 200,
) -> list[Reservation]:
    """List bookings, newest first, with optional room and status filters."""
    conditions: list[str] = []
    params: list = []

    if room_id is not None:
        conditions.append("room_id = %s")
        params.append(room_id)
    if status is not None:
        conditions.append("status = %s")
        params.append(status.value)

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    params.append(limit)

    cur.execute(
        f"""
        SELECT {_BOOKING_COLUMNS}
        FROM bookings
        {where}
        ORDER BY created_at DESC
        LIMIT %s
        """,
        params,
    )
    return [_row_to_reservation(row) for row in cur.fetchall()]

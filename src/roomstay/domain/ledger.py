"""Availability ledger - admin edits of per-day status and price override.

Each (room_id, date) has at most one row. Writes replace status and
price_override together; there is no partial update of one field.

Ledger edits are never validated against reservations: an admin may
block a night that an active reservation already occupies. The
reservation stays binding; the contradiction is logged, not rejected.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from roomstay.domain.access import require_admin
from roomstay.domain.dates import ONE_DAY
from roomstay.domain.errors import RoomNotFound, UpstreamFetchError, UpstreamWriteError, ValidationError
from roomstay.domain.models import DayStatus, RoomDayStatus
from roomstay.infra.db import txn
from roomstay.infra.repositories.availability_repository import (
    delete_day_status,
    list_day_statuses,
    upsert_day_status,
)
from roomstay.infra.repositories.bookings_repository import list_active_bookings
from roomstay.infra.repositories.rooms_repository import get_room
from roomstay.observability.logging import get_logger
from roomstay.sync.feed import AVAILABILITY_TABLE, get_change_feed

logger = get_logger(__name__)


def _coerce_status(status: DayStatus | str) -> DayStatus:
    try:
        return DayStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in DayStatus)
        raise ValidationError(f"status must be one of: {allowed}", fields=["status"])


def _coerce_price(price_override: Decimal | int | float | str | None) -> Decimal | None:
    if price_override is None:
        return None
    try:
        price = Decimal(str(price_override))
    except InvalidOperation:
        raise ValidationError("price_override must be a number", fields=["price_override"])
    if not price.is_finite() or price <= 0:
        raise ValidationError("price_override must be positive", fields=["price_override"])
    return price


def _flag_contradictions(cur: PgCursor, row: RoomDayStatus) -> None:
    """Log when the new ledger status disagrees with the reservation set."""
    reservations = list_active_bookings(cur, room_id=row.room_id, start=row.date, end=row.date + ONE_DAY)

    if reservations and row.status is not DayStatus.BOOKED:
        logger.warning(
            "ledger status contradicts an active reservation",
            extra={
                "extra_fields": {
                    "room_id": row.room_id,
                    "date": row.date.isoformat(),
                    "status": row.status.value,
                    "reservation_ids": [r.id for r in reservations],
                },
            },
        )
    elif not reservations and row.status is DayStatus.BOOKED:
        logger.warning(
            "ledger marks a night booked without an active reservation",
            extra={"extra_fields": {"room_id": row.room_id, "date": row.date.isoformat()}},
        )


def set_day_status(
    caller_id: str | None,
    room_id: str,
    day: date,
    status: DayStatus | str,
    price_override: Decimal | int | float | str | None = None,
) -> RoomDayStatus:
    """Upsert the ledger row for (room_id, day).

    Args:
        caller_id: Authenticated caller (must be an admin).
        room_id: Room identifier.
        day: Calendar day.
        status: available, booked or blocked.
        price_override: Optional positive nightly price for that day.

    Returns:
        The stored row.

    Raises:
        ValidationError: Bad status or non-positive price override.
        AuthorizationError: Caller is not an admin.
        RoomNotFound: Unknown room.
        UpstreamWriteError: The store rejected or failed the write.
    """
    new_status = _coerce_status(status)
    price = _coerce_price(price_override)

    try:
        with txn() as cur:
            require_admin(cur, caller_id)
            if get_room(cur, room_id) is None:
                raise RoomNotFound(room_id)
            stored = upsert_day_status(
                cur,
                RoomDayStatus(room_id=room_id, date=day, status=new_status, price_override=price),
            )
            _flag_contradictions(cur, stored)
    except psycopg2.Error as exc:
        logger.error(
            "ledger write failed",
            extra={"extra_fields": {"room_id": room_id, "date": day.isoformat(), "error": type(exc).__name__}},
        )
        raise UpstreamWriteError(f"Could not update availability for room {room_id}") from exc

    logger.info(
        "ledger day updated",
        extra={
            "extra_fields": {
                "room_id": room_id,
                "date": day.isoformat(),
                "status": stored.status.value,
                "has_price_override": stored.price_override is not None,
                "caller_id": caller_id,
            },
        },
    )
    get_change_feed().publish(AVAILABILITY_TABLE, {"room_id": room_id, "date": day.isoformat()})
    return stored


def clear_day_status(caller_id: str | None, room_id: str, day: date) -> bool:
    """Delete the ledger row for (room_id, day), reverting it to the default policy.

    Returns:
        True if a row existed.
    """
    try:
        with txn() as cur:
            require_admin(cur, caller_id)
            deleted = delete_day_status(cur, room_id=room_id, day=day)
    except psycopg2.Error as exc:
        raise UpstreamWriteError(f"Could not clear availability for room {room_id}") from exc

    if deleted:
        get_change_feed().publish(AVAILABILITY_TABLE, {"room_id": room_id, "date": day.isoformat()})
    return deleted


def get_day_statuses(caller_id: str | None, room_id: str, start: date, end: date) -> list[RoomDayStatus]:
    """Ledger rows for room_id between start and end (inclusive). Admin only."""
    try:
        with txn() as cur:
            require_admin(cur, caller_id)
            return list_day_statuses(cur, room_id=room_id, start=start, end=end)
    except psycopg2.Error as exc:
        raise UpstreamFetchError(f"Could not load ledger for room {room_id}") from exc

"""Rooms repository - read-only access to the catalog's rooms table."""

from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from roomstay.domain.models import Room
from roomstay.infra.db import fetchone, for_update

_ROOM_QUERY = "SELECT id, name, price_per_night, is_active FROM rooms WHERE id = %s"


def get_room(cur: PgCursor, room_id: str, *, lock: bool = False) -> Room | None:
    """Fetch a room by id.

    Args:
        cur: Database cursor.
        room_id: Room identifier.
        lock: If True, takes a row lock (FOR UPDATE) held until the
            transaction ends. Admissions lock the room to serialise
            concurrent writers for the same room.

    Returns:
        Room, or None if it does not exist.
    """
    if lock:
        row = for_update(cur, _ROOM_QUERY, (room_id,))
    else:
        row = fetchone(cur, _ROOM_QUERY, (room_id,))
    if row is None:
        return None
    return Room(
        id=str(row[0]),
        name=row[1],
        price_per_night=Decimal(row[2]),
        is_active=bool(row[3]),
    )

"""Availability resolution.

Combines the availability ledger (explicit per-day status and price
override) with the set of active reservations to produce the bookable
days of a room over a window, usually one calendar month.

A day is bookable when:
- no active reservation occupies it (nights are [check_in, check_out)),
- the ledger does not mark it blocked,
- and, under the opt-in policy only, the ledger marks it available.

The result is a pure function of (room, ledger rows, reservations,
window) at the time of the fetch. It is a derived view, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from roomstay.domain.dates import ONE_DAY, enumerate_nights, month_bounds
from roomstay.domain.errors import RoomNotFound, UpstreamFetchError
from roomstay.domain.models import DayStatus, Reservation, Room, RoomDayStatus
from roomstay.domain.reservations import occupied_nights
from roomstay.infra.db import txn
from roomstay.infra.repositories.availability_repository import list_day_statuses
from roomstay.infra.repositories.bookings_repository import list_active_bookings
from roomstay.infra.repositories.rooms_repository import get_room
from roomstay.infra.settings import AvailabilityPolicy, get_settings
from roomstay.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Bookable days and their effective nightly price.

    Attributes:
        room_id: Room identifier.
        window_start: First day of the window (inclusive).
        window_end: Last day of the window (inclusive).
        bookable_dates: Ascending bookable days.
        price_by_date: Effective nightly price of every bookable day.
        occupied_dates: Days consumed by active reservations.
        blocked_dates: Days the ledger marks blocked.
    """

    room_id: str
    window_start: date
    window_end: date
    bookable_dates: tuple[date, ...] = ()
    price_by_date: dict[date, Decimal] = field(default_factory=dict)
    occupied_dates: frozenset[date] = frozenset()
    blocked_dates: frozenset[date] = frozenset()

    def is_bookable(self, day: date) -> bool:
        return day in self.price_by_date

    def to_dict(self) -> dict:
        return {
            "room_id": self.room_id,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "bookable_dates": [d.isoformat() for d in self.bookable_dates],
            "price_by_date": {d.isoformat(): str(p) for d, p in sorted(self.price_by_date.items())},
            "occupied_dates": sorted(d.isoformat() for d in self.occupied_dates),
            "blocked_dates": sorted(d.isoformat() for d in self.blocked_dates),
        }


def effective_price(room: Room, row: RoomDayStatus | None) -> Decimal:
    """Nightly price: the day's override when present, else the base rate."""
    if row is not None and row.price_override is not None:
        return row.price_override
    return room.price_per_night


def compute_resolution(
    room: Room,
    day_rows: Iterable[RoomDayStatus],
    reservations: Iterable[Reservation],
    window_start: date,
    window_end: date,
    policy: AvailabilityPolicy = AvailabilityPolicy.OPT_OUT,
) -> Resolution:
    """Resolve bookable days for room over [window_start, window_end].

    Pure: performs no I/O. Inactive rooms resolve to no bookable days.
    Cancelled reservations are ignored even if passed in.
    """
    window = enumerate_nights(window_start, window_end + ONE_DAY)
    ledger = {row.date: row for row in day_rows if row.room_id == room.id}
    occupied = occupied_nights(reservations, window_start, window_end + ONE_DAY)
    blocked = frozenset(d for d, row in ledger.items() if row.status is DayStatus.BLOCKED)

    if not room.is_active:
        return Resolution(
            room_id=room.id,
            window_start=window_start,
            window_end=window_end,
            occupied_dates=frozenset(occupied),
            blocked_dates=blocked,
        )

    bookable: list[date] = []
    prices: dict[date, Decimal] = {}
    for day in window:
        if day in occupied or day in blocked:
            continue
        row = ledger.get(day)
        if policy is AvailabilityPolicy.OPT_IN and (row is None or row.status is not DayStatus.AVAILABLE):
            continue
        bookable.append(day)
        prices[day] = effective_price(room, row)

    return Resolution(
        room_id=room.id,
        window_start=window_start,
        window_end=window_end,
        bookable_dates=tuple(bookable),
        price_by_date=prices,
        occupied_dates=frozenset(occupied),
        blocked_dates=blocked,
    )


def resolve_window(
    cur: PgCursor,
    *,
    room_id: str,
    start: date,
    end: date,
    policy: AvailabilityPolicy | None = None,
    room: Room | None = None,
) -> Resolution:
    """Fetch ledger rows and active reservations, then resolve [start, end].

    All-or-nothing: any store failure raises UpstreamFetchError and no
    partial result is returned.

    Args:
        cur: Database cursor.
        room_id: Room identifier.
        start: First day (inclusive).
        end: Last day (inclusive).
        policy: Availability policy; defaults to the configured one.
        room: Already-loaded room (admission passes its locked row).

    Raises:
        RoomNotFound: If the room does not exist.
        UpstreamFetchError: If a fetch fails.
    """
    if policy is None:
        policy = get_settings().availability_policy

    try:
        if room is None:
            room = get_room(cur, room_id)
        if room is None:
            raise RoomNotFound(room_id)
        day_rows = list_day_statuses(cur, room_id=room_id, start=start, end=end)
        reservations = list_active_bookings(cur, room_id=room_id, start=start, end=end + ONE_DAY)
    except psycopg2.Error as exc:
        logger.error(
            "availability fetch failed",
            extra={"extra_fields": {"room_id": room_id, "error": type(exc).__name__}},
        )
        raise UpstreamFetchError(f"Could not load availability for room {room_id}") from exc

    return compute_resolution(room, day_rows, reservations, start, end, policy)


def resolve_availability(
    room_id: str,
    month_anchor: date,
    *,
    policy: AvailabilityPolicy | None = None,
    cur: PgCursor | None = None,
) -> Resolution:
    """Resolve the bookable days of room_id for the month containing month_anchor."""
    start, end = month_bounds(month_anchor)

    if cur is not None:
        return resolve_window(cur, room_id=room_id, start=start, end=end, policy=policy)

    try:
        with txn() as c:
            return resolve_window(c, room_id=room_id, start=start, end=end, policy=policy)
    except psycopg2.Error as exc:
        raise UpstreamFetchError(f"Could not load availability for room {room_id}") from exc

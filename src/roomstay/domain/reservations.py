"""Reservation set: occupancy of active bookings and admin listing."""

from __future__ import annotations

from datetime import date
from typing import Iterable

import psycopg2

from roomstay.domain.access import require_admin
from roomstay.domain.dates import enumerate_nights
from roomstay.domain.errors import UpstreamFetchError
from roomstay.domain.models import Reservation, ReservationStatus
from roomstay.infra.db import txn
from roomstay.infra.repositories.bookings_repository import list_bookings


def occupied_nights(
    reservations: Iterable[Reservation],
    window_start: date,
    window_end: date,
) -> set[date]:
    """Union of the nights of every active reservation, within [window_start, window_end)."""
    occupied: set[date] = set()
    for reservation in reservations:
        if not reservation.is_active:
            continue
        for night in enumerate_nights(reservation.check_in_date, reservation.check_out_date):
            if window_start <= night < window_end:
                occupied.add(night)
    return occupied


def first_overlap(
    reservations: Iterable[Reservation],
    check_in: date,
    check_out: date,
) -> date | None:
    """Earliest night of [check_in, check_out) already taken by an active reservation.

    Overlap formula: (check_in < existing_checkout) AND (check_out > existing_checkin).
    Touching stays (one's check-out == other's check-in) do not overlap.
    """
    earliest: date | None = None
    for reservation in reservations:
        if not reservation.is_active:
            continue
        if check_in < reservation.check_out_date and check_out > reservation.check_in_date:
            night = max(check_in, reservation.check_in_date)
            if earliest is None or night < earliest:
                earliest = night
    return earliest


def list_reservations(
    caller_id: str | None,
    *,
    room_id: str | None = None,
    status: ReservationStatus | None = None,
    limit: int = 200,
) -> list[Reservation]:
    """Admin listing of bookings, newest first.

    Raises:
        AuthorizationError: If caller is not an admin.
        UpstreamFetchError: If the store is unreachable.
    """
    try:
        with txn() as cur:
            require_admin(cur, caller_id)
            return list_bookings(cur, room_id=room_id, status=status, limit=limit)
    except psycopg2.Error as exc:
        raise UpstreamFetchError("Could not list bookings") from exc

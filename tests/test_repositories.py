"""Tests for the raw-SQL repositories, with a mocked cursor."""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from roomstay.domain.models import DayStatus, ReservationStatus, RoomDayStatus
from roomstay.infra.repositories.availability_repository import (
    delete_day_status,
    list_day_statuses,
    upsert_day_status,
)
from roomstay.infra.repositories.bookings_repository import (
    get_booking_by_idempotency_key,
    insert_booking,
    list_active_bookings,
    list_bookings,
)
from roomstay.infra.repositories.roles_repository import ADMIN_ROLE, is_admin
from roomstay.infra.repositories.rooms_repository import get_room


@pytest.fixture
def cur():
    """Mocked psycopg2 cursor."""
    return MagicMock()


def _booking_row(idempotency_key="key-1"):
    return (
        "res-1",
        "R1",
        "user-1",
        "Ana Souza",
        "ana@example.com",
        "+55 11 99999-8888",
        2,
        None,
        date(2024, 3, 10),
        date(2024, 3, 13),
        "pending",
        Decimal("3000.00"),
        idempotency_key,
        datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


class TestRoomsRepository:
    def test_get_room(self, cur):
        cur.fetchone.return_value = ("R1", "Garden Suite", Decimal("1000.00"), True)

        room = get_room(cur, "R1")

        assert room.id == "R1"
        assert room.price_per_night == Decimal("1000.00")
        assert "FOR UPDATE" not in cur.execute.call_args.args[0]

    def test_get_room_locked(self, cur):
        cur.fetchone.return_value = ("R1", "Garden Suite", Decimal("1000.00"), True)

        get_room(cur, "R1", lock=True)

        assert cur.execute.call_args.args[0].endswith("FOR UPDATE")

    def test_missing_room(self, cur):
        cur.fetchone.return_value = None
        assert get_room(cur, "nope") is None


class TestRolesRepository:
    def test_is_admin(self, cur):
        cur.fetchone.return_value = (1,)
        assert is_admin(cur, "user-1")
        assert cur.execute.call_args.args[1] == ("user-1", ADMIN_ROLE)

    def test_not_admin(self, cur):
        cur.fetchone.return_value = None
        assert not is_admin(cur, "user-1")


class TestAvailabilityRepository:
    def test_list_day_statuses(self, cur):
        cur.fetchall.return_value = [("R1", date(2024, 3, 20), "blocked", None)]

        rows = list_day_statuses(cur, room_id="R1", start=date(2024, 3, 1), end=date(2024, 3, 31))

        assert rows == [RoomDayStatus("R1", date(2024, 3, 20), DayStatus.BLOCKED, None)]
        assert cur.execute.call_args.args[1] == ("R1", date(2024, 3, 1), date(2024, 3, 31))

    def test_upsert_replaces_whole_row(self, cur):
        cur.fetchone.return_value = ("R1", date(2024, 3, 20), "available", Decimal("1500.00"))

        row = upsert_day_status(cur, RoomDayStatus("R1", date(2024, 3, 20), DayStatus.AVAILABLE, Decimal("1500")))

        sql = cur.execute.call_args.args[0]
        assert "ON CONFLICT (room_id, date) DO UPDATE" in sql
        assert row.price_override == Decimal("1500.00")

    def test_delete(self, cur):
        cur.rowcount = 1
        assert delete_day_status(cur, room_id="R1", day=date(2024, 3, 20))
        cur.rowcount = 0
        assert not delete_day_status(cur, room_id="R1", day=date(2024, 3, 20))


class TestBookingsRepository:
    def test_list_active_uses_overlap_formula(self, cur):
        cur.fetchall.return_value = [_booking_row()]

        rows = list_active_bookings(cur, room_id="R1", start=date(2024, 3, 1), end=date(2024, 4, 1))

        sql, params = cur.execute.call_args.args
        assert "check_in_date < %s" in sql
        assert "check_out_date > %s" in sql
        assert params == ("R1", ["pending", "confirmed"], date(2024, 4, 1), date(2024, 3, 1))
        assert rows[0].status is ReservationStatus.PENDING
        assert rows[0].total_price == Decimal("3000.00")

    def _insert(self, cur):
        return insert_booking(
            cur,
            room_id="R1",
            user_id="user-1",
            guest_name="Ana Souza",
            guest_email="ana@example.com",
            guest_phone="+55 11 99999-8888",
            guests_count=2,
            special_requests=None,
            check_in_date=date(2024, 3, 10),
            check_out_date=date(2024, 3, 13),
            total_price=Decimal("3000"),
            idempotency_key="key-1",
        )

    def test_insert_created(self, cur):
        cur.fetchone.return_value = _booking_row()

        reservation, created = self._insert(cur)

        assert created
        assert reservation.id == "res-1"
        assert "ON CONFLICT (user_id, idempotency_key) DO NOTHING" in cur.execute.call_args.args[0]

    def test_insert_conflict_returns_existing(self, cur):
        cur.fetchone.side_effect = [None, _booking_row()]

        reservation, created = self._insert(cur)

        assert not created
        assert reservation.idempotency_key == "key-1"
        assert cur.execute.call_count == 2
        assert cur.execute.call_args.args[1] == ("user-1", "key-1")

    def test_idempotency_lookup_scoped_to_user(self, cur):
        cur.fetchone.return_value = None

        assert get_booking_by_idempotency_key(cur, "user-2", "key-1") is None

        sql, params = cur.execute.call_args.args
        assert "user_id = %s AND idempotency_key = %s" in sql
        assert params == ("user-2", "key-1")

    def test_list_bookings_filters(self, cur):
        cur.fetchall.return_value = []

        list_bookings(cur, room_id="R1", status=ReservationStatus.CONFIRMED, limit=10)

        sql, params = cur.execute.call_args.args
        assert "room_id = %s AND status = %s" in sql
        assert params == ["R1", "confirmed", 10]

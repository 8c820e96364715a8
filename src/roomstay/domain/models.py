"""Engine value types: rooms, ledger rows and reservations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class DayStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Statuses that occupy their date span; cancelled reservations are inert.
ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


@dataclass(frozen=True)
class Room:
    """Read-only room reference (owned by the catalog, not the engine)."""

    id: str
    name: str
    price_per_night: Decimal
    is_active: bool


@dataclass(frozen=True)
class RoomDayStatus:
    """Ledger row, unique per (room_id, date)."""

    room_id: str
    date: date
    status: DayStatus
    price_override: Decimal | None = None


@dataclass(frozen=True)
class Reservation:
    id: str
    room_id: str
    guest_name: str
    guest_email: str
    guest_phone: str
    guests_count: int
    check_in_date: date
    check_out_date: date
    status: ReservationStatus
    total_price: Decimal
    special_requests: str | None = None
    user_id: str | None = None
    idempotency_key: str | None = None
    created_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "guest_name": self.guest_name,
            "guest_email": self.guest_email,
            "guest_phone": self.guest_phone,
            "guests_count": self.guests_count,
            "special_requests": self.special_requests,
            "check_in_date": self.check_in_date.isoformat(),
            "check_out_date": self.check_out_date.isoformat(),
            "status": self.status.value,
            "total_price": str(self.total_price),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

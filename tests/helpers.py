"""Shared test helpers (plain functions, not fixtures)."""

from __future__ import annotations

import base64
import time
from datetime import date
from decimal import Decimal

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from roomstay.domain.models import Reservation, ReservationStatus, Room, RoomDayStatus, DayStatus

OIDC_ENV = {
    "OIDC_ISSUER": "https://auth.example.com",
    "OIDC_AUDIENCE": "roomstay-api",
    "OIDC_JWKS_URL": "https://auth.example.com/.well-known/jwks.json",
}


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return base64.urlsafe_b64encode(n.to_bytes(byte_length, "big")).rstrip(b"=").decode()

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = OIDC_ENV["OIDC_ISSUER"],
    aud: str = OIDC_ENV["OIDC_AUDIENCE"],
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_room(room_id: str = "room-1", price: str = "1000", is_active: bool = True) -> Room:
    return Room(id=room_id, name="Garden Suite", price_per_night=Decimal(price), is_active=is_active)


def make_day(room_id: str, day: date, status: DayStatus, price: str | None = None) -> RoomDayStatus:
    return RoomDayStatus(
        room_id=room_id,
        date=day,
        status=status,
        price_override=Decimal(price) if price is not None else None,
    )


def make_reservation(
    check_in: date,
    check_out: date,
    *,
    room_id: str = "room-1",
    status: ReservationStatus = ReservationStatus.CONFIRMED,
    reservation_id: str = "res-1",
    total_price: str = "0",
    idempotency_key: str | None = None,
    user_id: str | None = None,
) -> Reservation:
    return Reservation(
        id=reservation_id,
        room_id=room_id,
        guest_name="Ana Souza",
        guest_email="ana@example.com",
        guest_phone="+55 11 99999-8888",
        guests_count=2,
        check_in_date=check_in,
        check_out_date=check_out,
        status=status,
        total_price=Decimal(total_price),
        idempotency_key=idempotency_key,
        user_id=user_id,
    )

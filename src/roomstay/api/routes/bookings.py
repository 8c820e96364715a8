"""Booking endpoints.

POST /bookings     admit a stay request (authenticated, Idempotency-Key required)
GET  /bookings     list bookings, newest first (admin)
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict

from roomstay.api.auth import CurrentUser, get_current_user
from roomstay.api.errors import to_http_exception
from roomstay.domain.admission import BookingDraft, admit_booking
from roomstay.domain.errors import EngineError
from roomstay.domain.models import ReservationStatus
from roomstay.domain.reservations import list_reservations
from roomstay.observability.logging import get_logger

router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)


class BookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    room_id: str
    guest_name: str
    guest_email: str
    guest_phone: str
    guests_count: int = 1
    check_in_date: date
    check_out_date: date
    special_requests: str | None = None


@router.post("", status_code=201)
def create_booking(
    body: BookingRequest,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    idempotency_key: str = Header(..., alias="Idempotency-Key"),
) -> dict:
    """Admit a booking.

    201 with the pending reservation; 200 when the Idempotency-Key was
    already used for this stay (the original reservation is returned);
    409 naming the first conflicting date; 422 listing faulty fields.
    Retrying after a 503 is safe with the same Idempotency-Key.
    """
    draft = BookingDraft(**body.model_dump())
    try:
        result = admit_booking(draft, caller_id=user.id, idempotency_key=idempotency_key)
    except EngineError as exc:
        raise to_http_exception(exc)

    if not result.ok:
        status_code = 409 if result.conflicting_date is not None else 422
        raise HTTPException(status_code=status_code, detail=result.to_dict())

    if result.replayed:
        response.status_code = 200
    return result.to_dict()


@router.get("")
def get_bookings(
    room_id: str | None = Query(None, description="Filter by room"),
    status: ReservationStatus | None = Query(None, description="Filter by status"),
    limit: int = Query(200, ge=1, le=1000),
    user: CurrentUser = Depends(get_current_user),
) -> list[dict]:
    """All bookings, newest first. Requires the admin role."""
    try:
        reservations = list_reservations(user.id, room_id=room_id, status=status, limit=limit)
    except EngineError as exc:
        raise to_http_exception(exc)
    return [r.to_dict() for r in reservations]

"""Availability ledger administration.

GET    /rooms/{room_id}/availability?start=...&end=...   ledger rows (admin)
PUT    /rooms/{room_id}/availability/{day}                set status/price override (admin)
DELETE /rooms/{room_id}/availability/{day}                revert day to the default policy (admin)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response
from pydantic import BaseModel, ConfigDict

from roomstay.api.auth import CurrentUser, get_current_user
from roomstay.api.errors import to_http_exception
from roomstay.domain.errors import EngineError
from roomstay.domain.ledger import clear_day_status, get_day_statuses, set_day_status
from roomstay.domain.models import DayStatus, RoomDayStatus

router = APIRouter(prefix="/rooms", tags=["ledger"])

MAX_RANGE_DAYS = 366


class DayStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: DayStatus
    price_override: Decimal | None = None


def _row_to_dict(row: RoomDayStatus) -> dict:
    return {
        "room_id": row.room_id,
        "date": row.date.isoformat(),
        "status": row.status.value,
        "price_override": str(row.price_override) if row.price_override is not None else None,
    }


@router.get("/{room_id}/availability")
def list_ledger(
    room_id: str = Path(..., description="Room ID"),
    start: date = Query(..., description="First day (inclusive)"),
    end: date = Query(..., description="Last day (inclusive)"),
    user: CurrentUser = Depends(get_current_user),
) -> list[dict]:
    """Explicit ledger rows of a room (days without a row are omitted)."""
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start")
    if (end - start).days >= MAX_RANGE_DAYS:
        raise HTTPException(status_code=422, detail=f"Date range cannot exceed {MAX_RANGE_DAYS} days")

    try:
        rows = get_day_statuses(user.id, room_id, start, end)
    except EngineError as exc:
        raise to_http_exception(exc)
    return [_row_to_dict(row) for row in rows]


@router.put("/{room_id}/availability/{day}")
def put_day_status(
    body: DayStatusRequest,
    room_id: str = Path(..., description="Room ID"),
    day: date = Path(..., description="Day (YYYY-MM-DD)"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Set the status and price override of one day. Requires the admin role."""
    try:
        row = set_day_status(user.id, room_id, day, body.status, body.price_override)
    except EngineError as exc:
        raise to_http_exception(exc)
    return _row_to_dict(row)


@router.delete("/{room_id}/availability/{day}", status_code=204)
def delete_day_status(
    room_id: str = Path(..., description="Room ID"),
    day: date = Path(..., description="Day (YYYY-MM-DD)"),
    user: CurrentUser = Depends(get_current_user),
) -> Response:
    """Remove the ledger row of one day. Requires the admin role."""
    try:
        deleted = clear_day_status(user.id, room_id, day)
    except EngineError as exc:
        raise to_http_exception(exc)
    if not deleted:
        raise HTTPException(status_code=404, detail="No ledger entry for that day")
    return Response(status_code=204)

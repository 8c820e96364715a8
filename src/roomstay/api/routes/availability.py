"""Availability endpoints.

GET /availability?room_id=...&month=YYYY-MM              resolved month (public)
GET /availability/quote?room_id=...&check_in=...&check_out=...   stay price preview (public)
WS  /availability/ws?room_id=...&month=YYYY-MM           live resolutions (public)
"""

from __future__ import annotations

import asyncio
from datetime import date

from fastapi import APIRouter, Query, WebSocket

from roomstay.api.errors import to_http_exception
from roomstay.domain.admission import quote_stay
from roomstay.domain.dates import parse_month
from roomstay.domain.errors import EngineError, InvalidRange, UpstreamError, ValidationError
from roomstay.domain.resolver import Resolution, resolve_availability
from roomstay.observability.logging import get_logger

router = APIRouter(prefix="/availability", tags=["availability"])

logger = get_logger(__name__)

# Close codes (RFC 6455): policy violation, try again later
_WS_INVALID_REQUEST = 1008
_WS_UNAVAILABLE = 1013


@router.get("")
def get_availability(
    room_id: str = Query(..., description="Room ID"),
    month: str = Query(..., description="Month (YYYY-MM)"),
) -> dict:
    """Bookable days and nightly prices of a room for one calendar month."""
    try:
        resolution = resolve_availability(room_id, parse_month(month))
    except EngineError as exc:
        raise to_http_exception(exc)
    return resolution.to_dict()


@router.get("/quote")
def get_quote(
    room_id: str = Query(..., description="Room ID"),
    check_in: date = Query(..., description="Check-in date (YYYY-MM-DD)"),
    check_out: date = Query(..., description="Check-out date (YYYY-MM-DD, exclusive)"),
) -> dict:
    """Price a prospective stay night by night. Writes nothing."""
    try:
        quote = quote_stay(room_id, check_in, check_out)
    except EngineError as exc:
        raise to_http_exception(exc)
    return quote.to_dict()


async def _push(websocket: WebSocket, queue: "asyncio.Queue[Resolution]") -> None:
    while True:
        resolution = await queue.get()
        await websocket.send_json(resolution.to_dict())


async def _until_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws")
async def watch_availability(
    websocket: WebSocket,
    room_id: str = Query(...),
    month: str = Query(...),
) -> None:
    """Push every recomputed resolution for (room_id, month) until the client leaves."""
    try:
        anchor = parse_month(month)
    except InvalidRange:
        await websocket.close(code=_WS_INVALID_REQUEST)
        return

    watcher = getattr(websocket.app.state, "watcher", None)
    if watcher is None:
        await websocket.close(code=_WS_UNAVAILABLE)
        return

    # Unknown rooms would never produce a view; refuse them up front.
    try:
        await watcher.resolve(room_id, anchor)
    except ValidationError:
        await websocket.close(code=_WS_INVALID_REQUEST)
        return
    except UpstreamError:
        await websocket.close(code=_WS_UNAVAILABLE)
        return

    await websocket.accept()
    queue: asyncio.Queue[Resolution] = asyncio.Queue()
    unsubscribe = watcher.watch(room_id, anchor, queue.put_nowait)

    pump = asyncio.create_task(_push(websocket, queue))
    listen = asyncio.create_task(_until_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({pump, listen}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "availability websocket closed with error",
                    extra={"extra_fields": {"room_id": room_id, "error": type(task.exception()).__name__}},
                )
    finally:
        unsubscribe()
        for task in (pump, listen):
            task.cancel()

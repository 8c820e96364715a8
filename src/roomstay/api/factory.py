"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response

from roomstay.infra.notifications import PgChangeListener
from roomstay.infra.settings import get_settings
from roomstay.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from roomstay.observability.logging import get_logger
from roomstay.sync.change_sync import AvailabilityWatcher

from .routes import availability, bookings, health, ledger

logger = get_logger(__name__)


def create_app(*, watcher: AvailabilityWatcher | None = None) -> FastAPI:
    """Create the engine's FastAPI app.

    Args:
        watcher: ChangeSync watcher to serve live availability with. A new
            one is built from settings if None.

    The lifespan starts the watcher and, with CHANGE_LISTENER=postgres,
    relays PostgreSQL notifications from other processes into it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = get_settings()
        live = watcher or AvailabilityWatcher(delay=settings.change_sync_delay)
        live.start()
        app.state.watcher = live

        listener: PgChangeListener | None = None
        if settings.change_listener == "postgres":
            listener = PgChangeListener()
            listener.start()
        try:
            yield
        finally:
            if listener is not None:
                listener.stop()
            await live.stop()
            app.state.watcher = None

    app = FastAPI(
        title="roomstay",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(health.router)
    app.include_router(availability.router)
    app.include_router(bookings.router)
    app.include_router(ledger.router)

    return app

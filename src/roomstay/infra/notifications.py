"""PostgreSQL LISTEN/NOTIFY relay into the in-process ChangeFeed.

Triggers on room_availability and bookings call
pg_notify('roomstay_changes', json) on every insert/update/delete (see
migrations/sql/002_change_notifications.sql). The payload is a hint only:

    {"table": "bookings", "room_id": "...",
     "check_in_date": "2024-03-10", "check_out_date": "2024-03-13"}
    {"table": "room_availability", "room_id": "...", "date": "2024-03-20"}

Anything that cannot be decoded is relayed as a payload-less
notification to every watched table, which forces a full recompute.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import psycopg2
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT, connection as PgConnection

from roomstay.infra.db import get_database_url
from roomstay.observability.logging import get_logger
from roomstay.sync.feed import WATCHED_TABLES, ChangeFeed, get_change_feed

logger = get_logger(__name__)

CHANGES_CHANNEL = "roomstay_changes"

# Seconds; doubled after every failed reconnect, up to the maximum.
RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0


def decode_notification(raw: str | None) -> tuple[str | None, dict[str, Any] | None]:
    """Split a NOTIFY payload into (table, hint payload).

    Returns (None, None) when the payload is missing, malformed, or names
    an unknown table.
    """
    if not raw:
        return None, None
    try:
        data = json.loads(raw)
    except ValueError:
        return None, None
    if not isinstance(data, dict):
        return None, None

    table = data.pop("table", None)
    if table not in WATCHED_TABLES:
        return None, None
    hint = {k: v for k, v in data.items() if v is not None}
    return table, hint or None


class PgChangeListener:
    """Listens on CHANGES_CHANNEL and republishes on a ChangeFeed.

    Uses a dedicated autocommit connection whose socket is registered with
    the asyncio loop, so notifications are drained without a thread. A lost
    connection is re-established with exponential backoff; once it is back,
    every watched table is invalidated because changes made in between
    were never delivered.
    """

    def __init__(
        self,
        feed: ChangeFeed | None = None,
        *,
        channel: str = CHANGES_CHANNEL,
        dsn: str | None = None,
        reconnect_delay: float = RECONNECT_INITIAL_DELAY,
        max_reconnect_delay: float = RECONNECT_MAX_DELAY,
    ) -> None:
        self._feed = feed or get_change_feed()
        self._channel = channel
        self._dsn = dsn
        self._conn: PgConnection | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._initial_delay = reconnect_delay
        self._max_delay = max_reconnect_delay
        self._next_delay = reconnect_delay
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._running = False

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._running = True
        self._connect()
        logger.info("change listener started", extra={"extra_fields": {"channel": self._channel}})

    def stop(self) -> None:
        self._running = False
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._disconnect()

    def _connect(self) -> None:
        conn = psycopg2.connect(self._dsn or get_database_url())
        try:
            conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
            with conn.cursor() as cur:
                cur.execute(f"LISTEN {self._channel};")
        except psycopg2.Error:
            conn.close()
            raise
        self._conn = conn
        self._loop.add_reader(conn.fileno(), self._drain)

    def _disconnect(self) -> None:
        conn = self._conn
        if conn is None:
            return
        self._conn = None
        if self._loop is not None and not self._loop.is_closed():
            self._loop.remove_reader(conn.fileno())
        conn.close()

    def _schedule_reconnect(self) -> None:
        if not self._running or self._loop is None or self._loop.is_closed():
            return
        delay = self._next_delay
        self._next_delay = min(delay * 2, self._max_delay)
        self._reconnect_handle = self._loop.call_later(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if not self._running:
            return
        try:
            self._connect()
        except psycopg2.Error as exc:
            logger.warning(
                "change listener reconnect failed",
                extra={
                    "extra_fields": {
                        "channel": self._channel,
                        "error": type(exc).__name__,
                        "retry_in": self._next_delay,
                    },
                },
            )
            self._schedule_reconnect()
            return

        self._next_delay = self._initial_delay
        logger.info("change listener reconnected", extra={"extra_fields": {"channel": self._channel}})
        self._publish_everything()

    def _publish_everything(self) -> None:
        for table in WATCHED_TABLES:
            self._feed.publish(table, None)

    def _drain(self) -> None:
        conn = self._conn
        if conn is None:
            return
        try:
            conn.poll()
        except psycopg2.Error:
            logger.exception(
                "change listener connection lost",
                extra={"extra_fields": {"channel": self._channel, "retry_in": self._next_delay}},
            )
            self._disconnect()
            self._schedule_reconnect()
            return

        while conn.notifies:
            notification = conn.notifies.pop(0)
            self.dispatch(notification.payload)

    def dispatch(self, raw: str | None) -> None:
        table, hint = decode_notification(raw)
        if table is None:
            self._publish_everything()
            return
        self._feed.publish(table, hint)

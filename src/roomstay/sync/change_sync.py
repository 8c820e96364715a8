"""ChangeSync - keeps resolved availability live without polling.

Observers watch a (room_id, month) key. Every change notification on the
ledger or bookings tables schedules a recomputation of the affected keys:

- Scoped: when the payload names a room (and dates), only that room's
  matching months are recomputed; otherwise every watched key is.
- Coalesced: a notification for a key with a recompute still pending
  reschedules it, so a burst collapses into one recompute. The last one
  is never dropped.
- Last-write-wins: each schedule issues a fresh generation token for the
  key; a recompute that finishes holding a stale token is discarded. The
  token is dropped with the key once nobody watches it.

Runs on one asyncio loop. Resolution itself is blocking I/O and is pushed
to a worker thread; no lock is held across an await.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Callable

from roomstay.domain.dates import month_start, months_spanned
from roomstay.domain.errors import EngineError
from roomstay.domain.resolver import Resolution, resolve_availability
from roomstay.infra.settings import get_settings
from roomstay.observability.logging import get_logger
from roomstay.sync.feed import WATCHED_TABLES, ChangeFeed, get_change_feed

logger = get_logger(__name__)

WatchKey = tuple[str, date]
Observer = Callable[[Resolution], None]
Resolver = Callable[[str, date], Resolution]


def payload_months(payload: dict[str, Any]) -> set[date] | None:
    """Month anchors touched by a notification payload, or None if unknown."""
    try:
        if payload.get("date"):
            return {month_start(date.fromisoformat(str(payload["date"])))}
        if payload.get("check_in_date") and payload.get("check_out_date"):
            check_in = date.fromisoformat(str(payload["check_in_date"]))
            check_out = date.fromisoformat(str(payload["check_out_date"]))
            return set(months_spanned(check_in, check_out)) or None
    except ValueError:
        return None
    return None


class AvailabilityWatcher:
    """Caches and republishes resolutions for watched (room, month) keys."""

    def __init__(
        self,
        resolve: Resolver | None = None,
        *,
        delay: float | None = None,
    ) -> None:
        self._resolve = resolve or resolve_availability
        self._delay = get_settings().change_sync_delay if delay is None else delay
        self._loop: asyncio.AbstractEventLoop | None = None
        self._observers: dict[WatchKey, list[Observer]] = {}
        self._views: dict[WatchKey, Resolution] = {}
        self._pending: dict[WatchKey, asyncio.TimerHandle] = {}
        self._generation: dict[WatchKey, object] = {}
        self._tasks: set[asyncio.Task] = set()
        self._feed_unsubscribers: list[Callable[[], None]] = []

    # ── lifecycle ───────────────────────────────────────────────────────

    def start(self, feed: ChangeFeed | None = None) -> None:
        """Bind to the running loop and subscribe to table changes."""
        self._loop = asyncio.get_running_loop()
        feed = feed or get_change_feed()
        for table in WATCHED_TABLES:
            self._feed_unsubscribers.append(feed.subscribe(table, self.notify))

    async def stop(self) -> None:
        for unsubscribe in self._feed_unsubscribers:
            unsubscribe()
        self._feed_unsubscribers.clear()

        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        self._generation.clear()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._observers.clear()
        self._views.clear()

    async def drain(self) -> None:
        """Wait until no recompute is pending or running (useful for testing)."""
        while self._pending or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self._delay)

    # ── observers ───────────────────────────────────────────────────────

    def watch(self, room_id: str, month_anchor: date, on_update: Observer) -> Callable[[], None]:
        """Observe resolutions for room_id over the month of month_anchor.

        The current cached view (if any) is delivered immediately and a
        fresh recompute is scheduled. Must be called on the watcher loop.

        Returns:
            Function that stops observing (idempotent).
        """
        key = (str(room_id), month_start(month_anchor))
        self._observers.setdefault(key, []).append(on_update)

        view = self._views.get(key)
        if view is not None:
            on_update(view)
        self._schedule(key)

        def unsubscribe() -> None:
            observers = self._observers.get(key)
            if not observers or on_update not in observers:
                return
            observers.remove(on_update)
            if not observers:
                self._forget(key)

        return unsubscribe

    async def resolve(self, room_id: str, month_anchor: date) -> Resolution:
        """Resolve (room_id, month) once in a worker thread, bypassing the cache."""
        return await asyncio.to_thread(self._resolve, str(room_id), month_start(month_anchor))

    def get_view(self, room_id: str, month_anchor: date) -> Resolution | None:
        return self._views.get((str(room_id), month_start(month_anchor)))

    def watched_keys(self) -> list[WatchKey]:
        return list(self._observers)

    # ── notifications ───────────────────────────────────────────────────

    def notify(self, table: str, payload: dict[str, Any] | None = None) -> None:
        """ChangeFeed callback; safe to call from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._invalidate(table, payload)
        else:
            loop.call_soon_threadsafe(self._invalidate, table, payload)

    def affected_keys(self, payload: dict[str, Any] | None) -> list[WatchKey]:
        keys = list(self._observers)
        if not payload or not payload.get("room_id"):
            return keys

        room_id = str(payload["room_id"])
        months = payload_months(payload)
        return [key for key in keys if key[0] == room_id and (months is None or key[1] in months)]

    def _invalidate(self, table: str, payload: dict[str, Any] | None) -> None:
        keys = self.affected_keys(payload)
        logger.debug(
            "availability invalidated",
            extra={
                "extra_fields": {
                    "table": table,
                    "scoped": bool(payload and payload.get("room_id")),
                    "keys": len(keys),
                },
            },
        )
        for key in keys:
            self._schedule(key)

    # ── recompute ───────────────────────────────────────────────────────

    def _schedule(self, key: WatchKey) -> None:
        generation = object()
        self._generation[key] = generation

        handle = self._pending.pop(key, None)
        if handle is not None:
            handle.cancel()
        self._pending[key] = self._loop.call_later(self._delay, self._start_recompute, key, generation)

    def _start_recompute(self, key: WatchKey, generation: object) -> None:
        self._pending.pop(key, None)
        task = self._loop.create_task(self._recompute(key, generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _recompute(self, key: WatchKey, generation: object) -> None:
        room_id, month = key
        try:
            resolution = await asyncio.to_thread(self._resolve, room_id, month)
        except EngineError as exc:
            # Keep serving the previous view; the next notification retries.
            logger.warning(
                "availability recompute failed",
                extra={
                    "extra_fields": {
                        "room_id": room_id,
                        "month": month.isoformat(),
                        "error": type(exc).__name__,
                        "reason": exc.reason,
                    },
                },
            )
            return
        except Exception:
            logger.exception(
                "availability recompute crashed",
                extra={"extra_fields": {"room_id": room_id, "month": month.isoformat()}},
            )
            return

        if self._generation.get(key) is not generation:
            return

        self._views[key] = resolution
        for observer in list(self._observers.get(key, [])):
            try:
                observer(resolution)
            except Exception:
                logger.exception(
                    "availability observer failed",
                    extra={"extra_fields": {"room_id": room_id, "month": month.isoformat()}},
                )

    def _forget(self, key: WatchKey) -> None:
        self._observers.pop(key, None)
        self._views.pop(key, None)
        handle = self._pending.pop(key, None)
        if handle is not None:
            handle.cancel()
        # An in-flight recompute for this key now holds a stale token, even if
        # the key is watched again before it finishes.
        self._generation.pop(key, None)

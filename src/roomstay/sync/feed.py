"""In-process change feed.

Tables publish "something changed" notifications here; ChangeSync
subscribes. Payloads are optional hints (room_id, dates) and carry no
row-level guarantees: subscribers treat every notification as a trigger
to recompute, never as a diff.

Sources:
- domain operations, right after their transaction commits
- PgChangeListener, relaying PostgreSQL NOTIFY from other processes
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from roomstay.observability.logging import get_logger

logger = get_logger(__name__)

AVAILABILITY_TABLE = "room_availability"
BOOKINGS_TABLE = "bookings"
WATCHED_TABLES = (AVAILABILITY_TABLE, BOOKINGS_TABLE)

ChangeCallback = Callable[[str, "dict[str, Any] | None"], None]


class ChangeFeed:
    """Fan-out of table change notifications to subscribers.

    publish() may be called from any thread (sync routes run in a
    threadpool); subscribers must be safe to call from the publishing
    thread.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ChangeCallback]] = {}
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register callback for changes on table.

        Returns:
            Function that removes the subscription (idempotent).
        """
        with self._lock:
            self._subscribers.setdefault(table, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, table: str, payload: dict[str, Any] | None = None) -> int:
        """Notify every subscriber of table.

        A failing subscriber is logged and does not prevent delivery to
        the others.

        Returns:
            Number of subscribers notified.
        """
        with self._lock:
            callbacks = list(self._subscribers.get(table, []))

        for callback in callbacks:
            try:
                callback(table, payload)
            except Exception:
                logger.exception(
                    "change subscriber failed",
                    extra={"extra_fields": {"table": table}},
                )
        return len(callbacks)

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, []))

    def clear(self) -> None:
        """Drop all subscriptions (useful for testing)."""
        with self._lock:
            self._subscribers.clear()


# Module-level feed (one per process)
_change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    """Get the process change feed (allows override in tests)."""
    return _change_feed

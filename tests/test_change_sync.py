"""Tests for ChangeSync (AvailabilityWatcher).

The resolver is replaced by a fake that counts calls, so these run
without Postgres on a fresh event loop per test.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import date

from roomstay.domain.errors import UpstreamFetchError
from roomstay.domain.resolver import Resolution
from roomstay.sync.change_sync import AvailabilityWatcher, payload_months
from roomstay.sync.feed import AVAILABILITY_TABLE, BOOKINGS_TABLE, ChangeFeed

MARCH = date(2024, 3, 1)
APRIL = date(2024, 4, 1)


class FakeResolver:
    """Returns a new Resolution per call, tagged with the call number."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, date]] = []
        self.fail = False
        self._lock = threading.Lock()

    def __call__(self, room_id: str, month: date) -> Resolution:
        with self._lock:
            self.calls.append((room_id, month))
            n = len(self.calls)
        if self.fail:
            raise UpstreamFetchError("store down")
        return Resolution(room_id=room_id, window_start=month, window_end=month, bookable_dates=(month,) * n)

    def count(self, room_id: str, month: date) -> int:
        return self.calls.count((room_id, month))


def _run(coro):
    return asyncio.run(coro)


class TestPayloadMonths:
    def test_single_date(self):
        assert payload_months({"room_id": "R1", "date": "2024-03-20"}) == {MARCH}

    def test_stay_across_months(self):
        payload = {"room_id": "R1", "check_in_date": "2024-03-30", "check_out_date": "2024-04-02"}
        assert payload_months(payload) == {MARCH, APRIL}

    def test_unknown(self):
        assert payload_months({"room_id": "R1"}) is None
        assert payload_months({"room_id": "R1", "date": "not-a-date"}) is None


class TestWatch:
    def test_initial_resolution_delivered(self):
        async def scenario():
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0)
            watcher.start(ChangeFeed())
            views = []
            watcher.watch("R1", date(2024, 3, 17), views.append)
            await watcher.drain()
            await watcher.stop()
            return resolver, views

        resolver, views = _run(scenario())

        assert resolver.calls == [("R1", MARCH)]
        assert len(views) == 1
        assert views[0].room_id == "R1"

    def test_cached_view_delivered_to_late_observer(self):
        async def scenario():
            watcher = AvailabilityWatcher(FakeResolver(), delay=0)
            watcher.start(ChangeFeed())
            watcher.watch("R1", MARCH, lambda view: None)
            await watcher.drain()

            late = []
            watcher.watch("R1", MARCH, late.append)
            immediate = list(late)
            await watcher.drain()
            await watcher.stop()
            return immediate, late

        immediate, late = _run(scenario())

        assert len(immediate) == 1
        assert len(late) == 2

    def test_unsubscribe_stops_updates(self):
        async def scenario():
            feed = ChangeFeed()
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0)
            watcher.start(feed)
            views = []
            unsubscribe = watcher.watch("R1", MARCH, views.append)
            await watcher.drain()

            unsubscribe()
            unsubscribe()
            feed.publish(BOOKINGS_TABLE, None)
            await watcher.drain()
            await watcher.stop()
            return watcher, resolver, views

        watcher, resolver, views = _run(scenario())

        assert len(views) == 1
        assert resolver.count("R1", MARCH) == 1
        assert watcher.watched_keys() == []

    def test_forgotten_keys_leave_no_state(self):
        async def scenario():
            watcher = AvailabilityWatcher(FakeResolver(), delay=0)
            watcher.start(ChangeFeed())
            for day in range(1, 29):
                unsubscribe = watcher.watch(f"R{day}", MARCH, lambda view: None)
                await watcher.drain()
                unsubscribe()
            state = (dict(watcher._generation), dict(watcher._views), dict(watcher._pending))
            await watcher.stop()
            return state

        generations, views, pending = _run(scenario())

        assert generations == {}
        assert views == {}
        assert pending == {}

    def test_rewatch_ignores_result_of_forgotten_watch(self):
        async def scenario():
            started = threading.Event()
            release = threading.Event()
            calls = []

            def slow_then_fast(room_id, month):
                calls.append(room_id)
                if len(calls) == 1:
                    started.set()
                    release.wait(timeout=5)
                    return Resolution(room_id=room_id, window_start=month, window_end=month, bookable_dates=())
                return Resolution(room_id=room_id, window_start=month, window_end=month, bookable_dates=(month,))

            watcher = AvailabilityWatcher(slow_then_fast, delay=0)
            watcher.start(ChangeFeed())
            first_views, second_views = [], []
            unsubscribe = watcher.watch("R1", MARCH, first_views.append)

            await asyncio.to_thread(started.wait, 5)
            unsubscribe()
            watcher.watch("R1", MARCH, second_views.append)
            await asyncio.sleep(0.01)
            release.set()
            await watcher.drain()
            await watcher.stop()
            return first_views, second_views

        first_views, second_views = _run(scenario())

        assert first_views == []
        assert [v.bookable_dates for v in second_views] == [(MARCH,)]


class TestInvalidation:
    def test_scoped_to_room_and_month(self):
        async def scenario():
            feed = ChangeFeed()
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0)
            watcher.start(feed)
            for key in (("R1", MARCH), ("R1", APRIL), ("R2", MARCH)):
                watcher.watch(key[0], key[1], lambda view: None)
            await watcher.drain()

            feed.publish(AVAILABILITY_TABLE, {"room_id": "R1", "date": "2024-03-20"})
            await watcher.drain()
            await watcher.stop()
            return resolver

        resolver = _run(scenario())

        assert resolver.count("R1", MARCH) == 2
        assert resolver.count("R1", APRIL) == 1
        assert resolver.count("R2", MARCH) == 1

    def test_booking_across_months_invalidates_both(self):
        async def scenario():
            feed = ChangeFeed()
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0)
            watcher.start(feed)
            watcher.watch("R1", MARCH, lambda view: None)
            watcher.watch("R1", APRIL, lambda view: None)
            await watcher.drain()

            feed.publish(
                BOOKINGS_TABLE,
                {"room_id": "R1", "check_in_date": "2024-03-30", "check_out_date": "2024-04-02"},
            )
            await watcher.drain()
            await watcher.stop()
            return resolver

        resolver = _run(scenario())

        assert resolver.count("R1", MARCH) == 2
        assert resolver.count("R1", APRIL) == 2

    def test_payload_less_notification_recomputes_everything(self):
        async def scenario():
            feed = ChangeFeed()
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0)
            watcher.start(feed)
            watcher.watch("R1", MARCH, lambda view: None)
            watcher.watch("R2", APRIL, lambda view: None)
            await watcher.drain()

            feed.publish(BOOKINGS_TABLE, None)
            await watcher.drain()
            await watcher.stop()
            return resolver

        resolver = _run(scenario())

        assert resolver.count("R1", MARCH) == 2
        assert resolver.count("R2", APRIL) == 2

    def test_burst_coalesced_final_state_delivered(self):
        async def scenario():
            feed = ChangeFeed()
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0.05)
            watcher.start(feed)
            views = []
            watcher.watch("R1", MARCH, views.append)
            await watcher.drain()

            for _ in range(10):
                feed.publish(BOOKINGS_TABLE, {"room_id": "R1"})
            await watcher.drain()
            await watcher.stop()
            return resolver, views

        resolver, views = _run(scenario())

        # One initial recompute plus one for the whole burst.
        assert resolver.count("R1", MARCH) == 2
        assert len(views) == 2
        assert views[-1].bookable_dates == (MARCH, MARCH)

    def test_notify_from_another_thread(self):
        async def scenario():
            feed = ChangeFeed()
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0)
            watcher.start(feed)
            watcher.watch("R1", MARCH, lambda view: None)
            await watcher.drain()

            thread = threading.Thread(target=feed.publish, args=(BOOKINGS_TABLE, {"room_id": "R1"}))
            thread.start()
            thread.join()
            # Let the threadsafe callback run.
            await asyncio.sleep(0)
            await watcher.drain()
            await watcher.stop()
            return resolver

        resolver = _run(scenario())

        assert resolver.count("R1", MARCH) == 2


class TestRecomputeErrors:
    def test_failed_recompute_keeps_previous_view(self):
        async def scenario():
            feed = ChangeFeed()
            resolver = FakeResolver()
            watcher = AvailabilityWatcher(resolver, delay=0)
            watcher.start(feed)
            views = []
            watcher.watch("R1", MARCH, views.append)
            await watcher.drain()
            first = watcher.get_view("R1", MARCH)

            resolver.fail = True
            feed.publish(BOOKINGS_TABLE, None)
            await watcher.drain()
            kept = watcher.get_view("R1", MARCH)
            await watcher.stop()
            return first, kept, views

        first, kept, views = _run(scenario())

        assert kept is first
        assert len(views) == 1

    def test_superseded_result_discarded(self):
        async def scenario():
            feed = ChangeFeed()
            started = threading.Event()
            release = threading.Event()
            calls = []

            def slow_then_fast(room_id, month):
                calls.append(room_id)
                if len(calls) == 1:
                    started.set()
                    release.wait(timeout=5)
                    return Resolution(room_id=room_id, window_start=month, window_end=month, bookable_dates=())
                return Resolution(room_id=room_id, window_start=month, window_end=month, bookable_dates=(month,))

            watcher = AvailabilityWatcher(slow_then_fast, delay=0)
            watcher.start(feed)
            views = []
            watcher.watch("R1", MARCH, views.append)

            # First recompute is blocked in its worker thread; a newer one is scheduled meanwhile.
            await asyncio.to_thread(started.wait, 5)
            feed.publish(BOOKINGS_TABLE, None)
            await asyncio.sleep(0.01)
            release.set()
            await watcher.drain()
            await watcher.stop()
            return views

        views = _run(scenario())

        assert [v.bookable_dates for v in views] == [(MARCH,)]

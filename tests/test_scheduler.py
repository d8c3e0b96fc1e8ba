"""
Tests for the dashsync refresh scheduler.

Test Coverage:
    - Periodic invalidation while held
    - Reference counting and timer cleanup
    - Interval tightening
"""

import pytest

from dashsync.core.models import QueryStatus
from dashsync.runtime.scheduler import RefreshScheduler


KEY = ("monitoring", "overview")


@pytest.fixture
def scheduler(cache):
    return RefreshScheduler(cache)


class TestPolling:
    """Tests for time-driven invalidation."""

    def test_tick_invalidates_key(self, scheduler, cache, clock):
        cache.subscribe(KEY, lambda s: None)
        cache.put(KEY, QueryStatus.SUCCESS, data={})
        scheduler.schedule_poll(KEY, 15.0)

        clock.advance(14)
        assert not cache.peek(KEY).is_invalidated

        clock.advance(1)
        assert cache.peek(KEY).is_invalidated
        assert scheduler.get_poll(KEY).ticks == 1

    def test_poll_repeats(self, scheduler, cache, clock):
        cache.subscribe(KEY, lambda s: None)
        scheduler.schedule_poll(KEY, 15.0)

        clock.advance(45)

        assert scheduler.get_poll(KEY).ticks == 3

    def test_tick_only_touches_exact_key(self, scheduler, cache, clock):
        cache.subscribe(KEY, lambda s: None)
        cache.subscribe(KEY + ("hourly",), lambda s: None)
        cache.put(KEY, QueryStatus.SUCCESS, data={})
        cache.put(KEY + ("hourly",), QueryStatus.SUCCESS, data=[])
        scheduler.schedule_poll(KEY, 15.0)

        clock.advance(15)

        assert not cache.peek(KEY + ("hourly",)).is_invalidated

    def test_subscribers_notified_on_tick(self, scheduler, cache, clock):
        states = []
        cache.subscribe(KEY, states.append)
        cache.put(KEY, QueryStatus.SUCCESS, data={})
        states.clear()
        scheduler.schedule_poll(KEY, 15.0)

        clock.advance(15)

        assert len(states) == 1
        assert states[0].is_invalidated


class TestHolders:
    """Tests for reference counting."""

    def test_last_cancel_stops_timer(self, scheduler, clock):
        scheduler.schedule_poll(KEY, 15.0)
        scheduler.schedule_poll(KEY, 15.0)

        scheduler.cancel_poll(KEY)
        assert scheduler.active_polls() == [KEY]

        scheduler.cancel_poll(KEY)
        assert scheduler.active_polls() == []
        assert clock.pending == 0

    def test_no_ticks_after_cancel(self, scheduler, cache, clock):
        cache.subscribe(KEY, lambda s: None)
        cache.put(KEY, QueryStatus.SUCCESS, data={})
        scheduler.schedule_poll(KEY, 15.0)
        scheduler.cancel_poll(KEY)

        clock.advance(60)

        assert not cache.peek(KEY).is_invalidated

    def test_cancel_unknown_key(self, scheduler):
        assert not scheduler.cancel_poll(KEY)

    def test_shorter_interval_tightens_schedule(self, scheduler, cache, clock):
        cache.subscribe(KEY, lambda s: None)
        scheduler.schedule_poll(KEY, 15.0)
        scheduler.schedule_poll(KEY, 5.0)

        clock.advance(15)

        poll = scheduler.get_poll(KEY)
        assert poll.interval == 5.0
        assert poll.ticks == 3
        assert poll.holders == 2

    def test_schedule_relaxes_when_fast_holder_leaves(self, scheduler, cache, clock):
        """After the 5s holder leaves, the remaining 15s holder ticks once per 15s."""
        cache.subscribe(KEY, lambda s: None)
        scheduler.schedule_poll(KEY, 15.0)
        scheduler.schedule_poll(KEY, 5.0)

        scheduler.cancel_poll(KEY, 5.0)
        clock.advance(15)

        poll = scheduler.get_poll(KEY)
        assert poll.interval == 15.0
        assert poll.holders == 1
        assert poll.ticks == 1

    def test_cancel_without_interval_drops_latest_holder(self, scheduler, clock):
        scheduler.schedule_poll(KEY, 15.0)
        scheduler.schedule_poll(KEY, 5.0)

        scheduler.cancel_poll(KEY)
        clock.advance(15)

        assert scheduler.get_poll(KEY).ticks == 1

    def test_slow_holder_leaving_keeps_fast_schedule(self, scheduler, clock):
        scheduler.schedule_poll(KEY, 5.0)
        scheduler.schedule_poll(KEY, 15.0)

        scheduler.cancel_poll(KEY, 15.0)
        clock.advance(15)

        poll = scheduler.get_poll(KEY)
        assert poll.interval == 5.0
        assert poll.ticks == 3

    def test_cancel_all(self, scheduler, clock):
        scheduler.schedule_poll(KEY, 15.0)
        scheduler.schedule_poll(("cdp-sync-history",), 30.0)

        assert scheduler.cancel_all() == 2
        assert clock.pending == 0

    def test_rejects_non_positive_interval(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.schedule_poll(KEY, 0)

"""
Tests for dashsync live queries.

Test Coverage:
    - Initial execution and reactive updates
    - Eager refresh on invalidation
    - Teardown: no delivery after close, poll release, eviction
    - Remount behaviour
    - Conditional (disabled) queries and rebinding
    - Polling with a live subscriber
"""

import asyncio

import pytest

from conftest import CountingExecutor, settle
from dashsync.core.errors import TransportFailure, ValidationFailure
from dashsync.core.models import QueryStatus


class TestLiveQueryBasics:
    """Tests for subscribing and receiving data."""

    @pytest.mark.asyncio
    async def test_initial_request_executes_and_delivers(self, client, executor):
        executor.result = ["a"]
        states = []

        live = client.use_live_query(("campaigns",), executor, on_change=states.append)
        assert live.is_loading
        await live.wait()

        assert executor.calls == 1
        assert live.status == QueryStatus.SUCCESS
        assert live.data == ["a"]
        assert [s.status for s in states][-1] == QueryStatus.SUCCESS
        assert live.events_delivered == len(states)

    @pytest.mark.asyncio
    async def test_views_share_one_execution(self, client, executor):
        executor.hold()
        first = client.use_live_query(("campaigns",), executor)
        second = client.use_live_query(("campaigns",), executor)
        await settle()

        assert executor.calls == 1
        executor.release()
        await first.wait()

        assert first.data == second.data == "data"

    @pytest.mark.asyncio
    async def test_error_surfaces_with_prior_data(self, client, executor):
        executor.result = ["good"]
        live = client.use_live_query(("campaigns",), executor)
        await live.wait()

        executor.failures = [TransportFailure("Bad gateway", status=502)]
        await live.refetch()

        assert live.status == QueryStatus.ERROR
        assert live.error.status == 502
        assert live.data == ["good"]

    @pytest.mark.asyncio
    async def test_invalid_key_reports_validation_failure(self, client, executor):
        live = client.use_live_query([], executor)
        await settle()

        assert live.status == QueryStatus.ERROR
        assert isinstance(live.error, ValidationFailure)
        assert executor.calls == 0

    @pytest.mark.asyncio
    async def test_listener_removal(self, client, executor):
        live = client.use_live_query(("campaigns",), executor)
        seen = []
        remove = live.add_listener(seen.append)
        remove()

        await live.wait()

        assert seen == []


class TestInvalidationRefresh:
    """Tests for eager refresh of subscribed keys."""

    @pytest.mark.asyncio
    async def test_invalidation_refetches_subscribed_view(self, client, executor):
        live = client.use_live_query(("campaigns",), executor, stale_time=300.0)
        await live.wait()

        client.invalidate_queries(("campaigns",))
        await settle()

        assert executor.calls == 2
        assert live.status == QueryStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_invalidation_with_two_views_executes_once(self, client, executor):
        client.use_live_query(("campaigns",), executor, stale_time=300.0)
        live = client.use_live_query(("campaigns",), executor, stale_time=300.0)
        await live.wait()

        client.invalidate_queries(("campaigns",))
        await settle()

        assert executor.calls == 2

    @pytest.mark.asyncio
    async def test_invalidation_during_flight_refetches_after(self, client, executor):
        """Data fetched before an invalidation is refreshed once more."""
        executor.hold()
        live = client.use_live_query(("campaigns",), executor, stale_time=300.0)
        await settle()

        client.invalidate_queries(("campaigns",))
        await settle()
        assert executor.calls == 1

        executor.release()
        await settle()

        assert executor.calls == 2
        assert live.status == QueryStatus.SUCCESS
        assert not live.state.is_invalidated

    @pytest.mark.asyncio
    async def test_disabled_view_does_not_refetch_on_invalidation(self, client, executor):
        client.set_query_data(("campaigns", "7"), {"id": "7"})
        live = client.use_live_query(("campaigns", "7"), executor, enabled=False)

        client.invalidate_queries(("campaigns",))
        await settle()

        assert executor.calls == 0
        assert live.data == {"id": "7"}


class TestTeardown:
    """Tests for closing live queries."""

    @pytest.mark.asyncio
    async def test_closed_view_gets_no_result_but_cache_is_populated(self, client, executor):
        executor.hold()
        states = []
        live = client.use_live_query(("campaigns",), executor, on_change=states.append)
        await settle()
        delivered = len(states)

        live.close()
        executor.release()
        await settle()

        assert len(states) == delivered
        assert live.closed
        assert client.get_query_data(("campaigns",)) == "data"

    @pytest.mark.asyncio
    async def test_close_releases_poll(self, client, executor):
        live = client.use_live_query(
            ("monitoring", "overview"), executor, refetch_interval=15.0
        )
        assert client.scheduler.active_polls() == [("monitoring", "overview")]

        live.close()

        assert client.scheduler.active_polls() == []

    @pytest.mark.asyncio
    async def test_entry_evicted_after_grace_period(self, client, executor, clock):
        with client.use_live_query(("campaigns",), executor) as live:
            await live.wait()

        clock.advance(5)

        assert client.cache.peek(("campaigns",)) is None

    @pytest.mark.asyncio
    async def test_remaining_view_unaffected_when_other_unmounts(self, client, executor, clock):
        executor.result = {"id": "7"}
        first = client.use_live_query(("campaigns", "7"), executor)
        second = client.use_live_query(("campaigns", "7"), executor)
        await first.wait()

        first.close()
        clock.advance(10)
        await settle()

        assert executor.calls == 1
        assert second.data == {"id": "7"}
        assert second.status == QueryStatus.SUCCESS
        assert client.cache.peek(("campaigns", "7")) is not None

    @pytest.mark.asyncio
    async def test_reset_during_refetch_does_not_cancel_view(self, client, executor):
        live = client.use_live_query(("campaigns",), executor)
        await live.wait()

        executor.hold()
        pending = asyncio.ensure_future(live.refetch())
        await settle()
        assert executor.calls == 2

        client.reset()
        await settle()

        assert pending.done()
        assert not pending.cancelled()
        assert pending.exception() is None
        assert live.closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, client, executor):
        live = client.use_live_query(("campaigns",), executor)
        live.close()
        live.close()
        assert client.cache.subscriber_count(("campaigns",)) == 0


class TestRemount:
    """Tests for views mounting after another view held the key."""

    @pytest.mark.asyncio
    async def test_remount_with_fresh_entry_does_not_fetch(self, client, executor, clock):
        first = client.use_live_query(("campaigns", "7"), executor)
        await first.wait()
        first.close()

        clock.advance(2)
        second = client.use_live_query(("campaigns", "7"), executor)
        await settle()

        assert executor.calls == 1
        assert second.data == "data"

    @pytest.mark.asyncio
    async def test_remount_with_stale_entry_fetches(self, client, executor, clock):
        first = client.use_live_query(("campaigns",), executor, stale_time=1.0)
        await first.wait()
        first.close()

        clock.advance(2)
        second = client.use_live_query(("campaigns",), executor, stale_time=1.0)
        await second.wait()

        assert executor.calls == 2

    @pytest.mark.asyncio
    async def test_remount_after_eviction_fetches(self, client, executor, clock):
        first = client.use_live_query(("campaigns",), executor)
        await first.wait()
        first.close()

        clock.advance(10)
        second = client.use_live_query(("campaigns",), executor)
        await second.wait()

        assert executor.calls == 2
        assert second.data == "data"


class TestConditional:
    """Tests for enabled flags and rebinding."""

    @pytest.mark.asyncio
    async def test_disabled_is_idle(self, client, executor):
        live = client.use_live_query(("campaigns", ""), executor, enabled=False)
        await settle()

        assert live.status == QueryStatus.IDLE
        assert live.data is None
        assert executor.calls == 0

    @pytest.mark.asyncio
    async def test_enable_later_fetches(self, client, executor):
        live = client.use_live_query(("campaigns", "7"), executor, enabled=False)
        live.update(enabled=True)
        await live.wait()

        assert executor.calls == 1
        assert live.status == QueryStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_rebind_to_new_key(self, client):
        empty = CountingExecutor()
        live = client.use_live_query(("campaigns", ""), empty, enabled=False)

        loaded = CountingExecutor({"id": "7"})
        live.update(key=("campaigns", "7"), executor=loaded, enabled=True)
        await live.wait()

        assert live.key == ("campaigns", "7")
        assert live.data == {"id": "7"}
        assert client.cache.subscriber_count(("campaigns", "")) == 0
        assert empty.calls == 0


class TestPollingView:
    """Tests for live queries with a refetch interval."""

    @pytest.mark.asyncio
    async def test_one_extra_execution_per_interval(self, client, executor, clock):
        live = client.use_live_query(
            ("monitoring", "overview"), executor, stale_time=10.0, refetch_interval=15.0
        )
        await live.wait()
        assert executor.calls == 1

        clock.advance(14)
        await settle()
        assert executor.calls == 1

        clock.advance(1)
        await settle()
        assert executor.calls == 2

    @pytest.mark.asyncio
    async def test_fast_view_closing_restores_slow_interval(self, client, executor, clock):
        slow = client.use_live_query(
            ("monitoring", "overview"), executor, stale_time=10.0, refetch_interval=15.0
        )
        fast = client.use_live_query(
            ("monitoring", "overview"), executor, stale_time=10.0, refetch_interval=5.0
        )
        await slow.wait()
        assert executor.calls == 1

        fast.close()
        for _ in range(3):
            clock.advance(5)
            await settle()

        assert executor.calls == 2
        assert slow.status == QueryStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_two_polling_views_share_timer(self, client, executor, clock):
        first = client.use_live_query(("monitoring", "overview"), executor, refetch_interval=15.0)
        second = client.use_live_query(("monitoring", "overview"), executor, refetch_interval=15.0)
        await first.wait()

        first.close()
        clock.advance(15)
        await settle()

        assert executor.calls == 2
        second.close()
        assert client.scheduler.active_polls() == []

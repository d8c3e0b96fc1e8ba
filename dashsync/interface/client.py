"""
Main client SDK for dashsync.

QueryClient owns one session's cache and the coordinators around it. Create
one per application session, pass it to the views, and call ``reset()`` on
logout or navigation reset.

Example:
    ```python
    client = QueryClient(QueryClientConfig.from_env())

    campaigns = client.use_live_query(("campaigns",), api.list_campaigns, stale_time=30.0)
    create = client.use_mutation(api.create_campaign, invalidates=[("campaigns",)])

    await create.mutate(payload)   # campaigns refreshes on its own
    ```
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from dashsync.core.clock import Clock, LoopClock
from dashsync.core.config import QueryClientConfig
from dashsync.core.keys import KeyLike, QueryKey
from dashsync.core.models import QueryState
from dashsync.runtime.cache import CacheStats, QueryCache
from dashsync.runtime.mutation import (
    Invalidates,
    Mutation,
    MutationCoordinator,
    MutationDescriptor,
    Writer,
)
from dashsync.runtime.query import Executor, QueryCoordinator
from dashsync.runtime.scheduler import RefreshScheduler
from dashsync.runtime.subscription import LiveQuery, StateCallback


logger = logging.getLogger(__name__)


class QueryClient:
    """
    Session owner for the cache, coordinators and scheduler.

    This is the only object views need. It is injected rather than held in
    module state, so two sessions never share cached data.
    """

    def __init__(
        self,
        config: Optional[QueryClientConfig] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize a session.

        Args:
            config: Session defaults (stale time, retention, retry)
            clock: Time source (defaults to the asyncio loop clock)
        """
        self._config = config or QueryClientConfig()
        self._clock = clock or LoopClock()

        self._cache = QueryCache(
            clock=self._clock,
            gc_time=self._config.gc_time,
            default_stale_time=self._config.stale_time,
            max_size=self._config.max_size,
        )
        self._queries = QueryCoordinator(
            self._cache,
            retry=self._config.retry,
            retry_delay=self._config.retry_delay,
        )
        self._mutations = MutationCoordinator(self._cache)
        self._scheduler = RefreshScheduler(self._cache, self._clock)
        self._live: dict[str, LiveQuery] = {}
        self._closed = False

        logger.info("Query client session started")

    @property
    def config(self) -> QueryClientConfig:
        return self._config

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def queries(self) -> QueryCoordinator:
        return self._queries

    @property
    def mutations(self) -> MutationCoordinator:
        return self._mutations

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    @property
    def stats(self) -> CacheStats:
        return self._cache.stats

    # =========================================================================
    # View API
    # =========================================================================

    def use_live_query(
        self,
        key: KeyLike,
        executor: Executor,
        *,
        stale_time: Optional[float] = None,
        enabled: bool = True,
        refetch_interval: Optional[float] = None,
        retry: Optional[int] = None,
        retry_delay: Optional[float] = None,
        on_change: Optional[StateCallback] = None,
    ) -> LiveQuery:
        """
        Subscribe a view to a query key.

        Args:
            key: Query key
            executor: Coroutine function performing the remote read
            stale_time: Freshness tolerance (defaults to the session's)
            enabled: When False, the query never executes
            refetch_interval: Seconds between forced refreshes
            retry: Silent retries after the first failure
            retry_delay: Seconds between attempts
            on_change: Listener registered before the first request

        Returns:
            A started LiveQuery; close it on view teardown
        """
        self._ensure_open()
        live = LiveQuery(
            self._queries,
            self._scheduler,
            key,
            executor,
            stale_time=stale_time,
            enabled=enabled,
            refetch_interval=refetch_interval,
            retry=retry,
            retry_delay=retry_delay,
            on_change=on_change,
        )
        self._prune()
        self._live[live.id] = live
        return live

    def use_mutation(
        self,
        writer: Writer,
        invalidates: Invalidates = (),
        *,
        name: Optional[str] = None,
        on_success: Optional[Callable[[Any, Any], None]] = None,
        on_error: Optional[Callable[[BaseException, Any], None]] = None,
    ) -> Mutation:
        """
        Create a view-facing mutation handle.

        Args:
            writer: Coroutine function performing the write; receives the
                mutation input when one is given
            invalidates: Keys/prefixes, or ``(variables, result) -> keys``
            name: Label for log messages
            on_success: Called with ``(result, variables)``
            on_error: Called with ``(error, variables)``

        Returns:
            Mutation handle
        """
        self._ensure_open()
        descriptor = MutationDescriptor(writer=writer, invalidates=invalidates, name=name)
        return Mutation(self._mutations, descriptor, on_success=on_success, on_error=on_error)

    # =========================================================================
    # Imperative API
    # =========================================================================

    async def fetch_query(self, key: KeyLike, executor: Executor, **options: Any) -> Any:
        """Return fresh data for a key, executing if needed."""
        self._ensure_open()
        return await self._queries.fetch(key, executor, **options)

    def prefetch_query(self, key: KeyLike, executor: Executor, **options: Any) -> None:
        """Start an execution for a key without subscribing to it."""
        self._ensure_open()
        self._queries.request(key, executor, **options)

    async def mutate(self, writer: Callable[[], Any], invalidates: Sequence[KeyLike] = ()) -> Any:
        """Run a one-off write and invalidate its keys on success."""
        self._ensure_open()
        return await self._mutations.mutate(writer, invalidates)

    def invalidate_queries(self, key: KeyLike, exact: bool = False) -> list[QueryKey]:
        """Mark a key, or every key under a prefix, stale."""
        return self._cache.invalidate(key, exact=exact)

    def get_query_data(self, key: KeyLike) -> Any:
        """Get cached data for a key, None if absent."""
        entry = self._cache.peek(key)
        return entry.data if entry is not None else None

    def set_query_data(self, key: KeyLike, data: Any) -> None:
        """Write data for a key as a fresh success."""
        self._cache.set_data(key, data)

    def get_query_state(self, key: KeyLike) -> QueryState:
        return self._cache.state(key)

    def live_queries(self) -> list[LiveQuery]:
        """Get all open live queries of this session."""
        return [q for q in self._live.values() if not q.closed]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def reset(self) -> int:
        """
        Tear down session state (logout, navigation reset).

        Closes every live query, stops polls, cancels pending executions
        and drops all cached data.

        Returns:
            Number of entries dropped
        """
        for live in list(self._live.values()):
            live.close()
        self._live.clear()
        self._scheduler.cancel_all()
        count = self._cache.clear()
        logger.info("Query client session reset (%d entries dropped)", count)
        return count

    def close(self) -> None:
        """Reset and refuse further use."""
        if self._closed:
            return
        self.reset()
        self._closed = True

    def __enter__(self) -> "QueryClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Query client is closed")

    def _prune(self) -> None:
        self._live = {i: q for i, q in self._live.items() if not q.closed}

"""
Live queries for dashsync.

This module binds a view's lifetime to a cache entry. A view declares the
key it needs once and receives every subsequent change of that entry's
data, error or loading state, without re-issuing the request itself.

Design Philosophy:
    Traditional approach: views re-fetch on every render or poll by hand
    dashsync approach: views hold a LiveQuery; the cache pushes changes
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from dashsync.core.errors import ValidationFailure
from dashsync.core.keys import KeyLike, QueryKey, format_key, normalize_key
from dashsync.core.models import QueryState, QueryStatus, generate_id
from dashsync.runtime.cache import CacheSubscription
from dashsync.runtime.query import Executor, QueryCoordinator
from dashsync.runtime.scheduler import RefreshScheduler


logger = logging.getLogger(__name__)

# Type alias for view callbacks
StateCallback = Callable[[QueryState], None]


class LiveQuery:
    """
    A view's subscription to one query key.

    On creation the live query subscribes to the cache, holds a poll if a
    refetch interval is set, and requests the key (executing if the entry is
    absent or stale). When the entry is invalidated while nothing is in
    flight, it re-executes right away.

    After ``close()`` the view gets no further callbacks. An execution it
    triggered still completes and populates the cache for other views.

    Usage:
        ```python
        with client.use_live_query(("campaigns",), api.list_campaigns, stale_time=30.0) as campaigns:
            campaigns.add_listener(lambda state: render(state.data))
            ...
        ```
    """

    def __init__(
        self,
        queries: QueryCoordinator,
        scheduler: RefreshScheduler,
        key: KeyLike,
        executor: Executor,
        *,
        stale_time: Optional[float] = None,
        enabled: bool = True,
        refetch_interval: Optional[float] = None,
        retry: Optional[int] = None,
        retry_delay: Optional[float] = None,
        on_change: Optional[StateCallback] = None,
    ):
        """
        Initialize and start the live query.

        Args:
            queries: Coordinator that performs executions
            scheduler: Scheduler holding polls
            key: Query key
            executor: Coroutine function performing the remote read
            stale_time: Freshness tolerance of this view
            enabled: When False, the view observes the key but never executes
            refetch_interval: Seconds between forced refreshes
            retry: Silent retries after the first failure
            retry_delay: Seconds between attempts
            on_change: Listener registered before the first request
        """
        self.id = generate_id()
        self._queries = queries
        self._cache = queries.cache
        self._scheduler = scheduler

        self._executor = executor
        self._stale_time = self._cache.default_stale_time if stale_time is None else stale_time
        self._enabled = enabled
        self._refetch_interval = refetch_interval
        self._retry = retry
        self._retry_delay = retry_delay

        self._key: Optional[QueryKey] = None
        self._handle: Optional[CacheSubscription] = None
        self._polling = False
        self._closed = False
        self._state = QueryState()
        self._listeners: dict[int, StateCallback] = {}
        self._next_listener = 0
        self.events_delivered = 0

        if on_change is not None:
            self.add_listener(on_change)

        self._bind(key)

    # ------------------------------------------------------------------
    # View-facing state
    # ------------------------------------------------------------------

    @property
    def key(self) -> Optional[QueryKey]:
        return self._key

    @property
    def state(self) -> QueryState:
        return self._state

    @property
    def data(self) -> Any:
        return self._state.data

    @property
    def error(self) -> Optional[BaseException]:
        return self._state.error

    @property
    def status(self) -> QueryStatus:
        return self._state.status

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_fetching(self) -> bool:
        return self._state.is_fetching

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def closed(self) -> bool:
        return self._closed

    def add_listener(self, callback: StateCallback) -> Callable[[], None]:
        """
        Register a callback for state changes.

        Returns:
            Function that removes the listener
        """
        listener_id = self._next_listener
        self._next_listener += 1
        self._listeners[listener_id] = callback

        def remove() -> None:
            self._listeners.pop(listener_id, None)

        return remove

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def refetch(self) -> QueryState:
        """
        Force an execution (or join the one in flight) and wait for it.

        Returns:
            State after the execution settles
        """
        self._request(force=True)
        return await self.wait()

    async def wait(self) -> QueryState:
        """Wait for the pending execution of this key, if any."""
        if self._key is not None:
            await self._queries.wait(self._key)
        return self._state

    def update(
        self,
        *,
        key: Optional[KeyLike] = None,
        executor: Optional[Executor] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        """
        Rebind the live query, e.g. once a campaign id becomes known.

        Args:
            key: New key (rebinds the subscription if different)
            executor: New executor
            enabled: New enabled flag
        """
        if self._closed:
            return

        if executor is not None:
            self._executor = executor
        if enabled is not None:
            self._enabled = enabled

        if key is not None and not self._same_key(key):
            self._release()
            self._bind(key)
            return

        if self._key is None:
            return
        self._sync_poll()
        self._request()

    def close(self) -> None:
        """Release the subscription and any poll it holds."""
        if self._closed:
            return
        self._closed = True
        self._release()
        self._listeners.clear()
        logger.debug("Live query %s closed", self.id)

    def __enter__(self) -> "LiveQuery":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bind(self, key: KeyLike) -> None:
        try:
            key = normalize_key(key)
        except ValidationFailure as exc:
            self._key = None
            self._set_state(QueryState(status=QueryStatus.ERROR, error=exc))
            return

        self._key = key
        self._handle = self._cache.subscribe(key, self._on_cache_change, self._stale_time)
        self._sync_poll()
        self._set_state(self._cache.state(key, self._stale_time))
        self._request()

    def _release(self) -> None:
        if self._handle is not None:
            self._cache.unsubscribe(self._handle)
            self._handle = None
        if self._polling and self._key is not None:
            self._scheduler.cancel_poll(self._key, self._refetch_interval)
        self._polling = False

    def _sync_poll(self) -> None:
        """Hold a poll exactly while enabled with an interval."""
        wants_poll = self._enabled and bool(self._refetch_interval)
        if wants_poll and not self._polling:
            self._scheduler.schedule_poll(self._key, self._refetch_interval)
            self._polling = True
        elif not wants_poll and self._polling:
            self._scheduler.cancel_poll(self._key, self._refetch_interval)
            self._polling = False

    def _request(self, force: bool = False) -> None:
        if self._closed or self._key is None:
            return
        self._queries.request(
            self._key,
            self._executor,
            stale_time=self._stale_time,
            enabled=self._enabled,
            retry=self._retry,
            retry_delay=self._retry_delay,
            force=force,
        )

    def _on_cache_change(self, state: QueryState) -> None:
        if self._closed:
            return
        self._set_state(state)

        if state.is_invalidated and not state.is_fetching and self._enabled:
            logger.debug("Refreshing invalidated %s", format_key(state.key))
            self._request()

    def _set_state(self, state: QueryState) -> None:
        self._state = state
        for callback in list(self._listeners.values()):
            try:
                callback(state)
            except Exception:
                logger.exception("Live query %s listener failed", self.id)
                continue
            self.events_delivered += 1

    def _same_key(self, key: KeyLike) -> bool:
        try:
            return normalize_key(key) == self._key
        except ValidationFailure:
            return False

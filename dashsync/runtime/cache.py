"""
Query cache for dashsync.

This module provides the session-wide table of cached results. Every
entry knows when it was fetched and how long it stays fresh, and every
state change is pushed synchronously to the subscribers of that key.

Traditional Cache:  delete on invalidation, reader waits for a refetch
dashsync Cache:     stale-while-revalidate, last-good data stays visible

Design Philosophy:
    The store is the only shared mutable state in a session. It is never
    written by views, only by the query and mutation coordinators, and all
    writes are synchronous so no reader observes a half-updated entry.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from dashsync.core.clock import Clock, LoopClock, TimerHandle
from dashsync.core.keys import KeyLike, QueryKey, filter_keys, format_key, normalize_key
from dashsync.core.models import CacheEntry, QueryState, QueryStatus, generate_id


logger = logging.getLogger(__name__)

_MISSING = object()

# Type alias for subscriber callbacks
CacheCallback = Callable[[QueryState], None]


class CacheStats(BaseModel):
    """Statistics for the cache."""

    hits: int = Field(default=0, description="Reads that found an entry")
    misses: int = Field(default=0, description="Reads that found nothing")
    invalidations: int = Field(default=0, description="Entries marked invalidated")
    evictions: int = Field(default=0, description="Entries removed")
    notifications: int = Field(default=0, description="Callbacks delivered")
    size: int = Field(default=0, description="Current cache size")

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class CacheSubscription(BaseModel):
    """
    A disposable registration of interest in one key.

    Returned by ``QueryCache.subscribe`` and passed back to ``unsubscribe``.
    """

    id: str = Field(default_factory=generate_id, description="Subscription ID")
    key: QueryKey = Field(..., description="Watched key")
    stale_time: Optional[float] = Field(default=None, description="Staleness tolerance")
    active: bool = Field(default=True, description="Whether subscription is active")

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When subscription was created"
    )
    events_delivered: int = Field(default=0, description="Number of events delivered")

    model_config = {"extra": "forbid"}


class QueryCache:
    """
    Keyed table of cached results with freshness metadata.

    Usage:
        ```python
        cache = QueryCache(gc_time=5.0)

        handle = cache.subscribe(("campaigns",), lambda state: render(state))
        cache.put(("campaigns",), QueryStatus.SUCCESS, data=campaigns)

        # After a write, mark everything under "campaigns" stale
        cache.invalidate(("campaigns",))

        cache.unsubscribe(handle)
        ```
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        gc_time: float = 5.0,
        default_stale_time: float = 0.0,
        max_size: int = 1000,
    ):
        """
        Initialize the cache.

        Args:
            clock: Time source (defaults to the asyncio loop clock)
            gc_time: Seconds to retain an entry after its last subscriber leaves
            default_stale_time: Freshness window for entries built without one
            max_size: Maximum number of entries
        """
        self._clock = clock or LoopClock()
        self._gc_time = gc_time
        self._default_stale_time = default_stale_time
        self._max_size = max_size

        # Storage
        self._entries: dict[QueryKey, CacheEntry] = {}

        # Subscribers per key, and their callbacks
        self._subscriptions: dict[QueryKey, dict[str, CacheSubscription]] = {}
        self._callbacks: dict[str, CacheCallback] = {}

        # Pending evictions
        self._gc_timers: dict[QueryKey, TimerHandle] = {}

        # Statistics
        self._stats = CacheStats()

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def default_stale_time(self) -> float:
        return self._default_stale_time

    @property
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        self._stats.size = len(self._entries)
        return self._stats.model_copy()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: KeyLike) -> Optional[CacheEntry]:
        """
        Get an entry from the cache.

        Args:
            key: Query key

        Returns:
            The entry if present, None otherwise
        """
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        entry.touch()
        self._stats.hits += 1
        return entry

    def peek(self, key: KeyLike) -> Optional[CacheEntry]:
        """Get an entry without touching it or counting the read."""
        return self._entries.get(normalize_key(key))

    def is_stale(self, entry: CacheEntry, stale_time: Optional[float] = None) -> bool:
        """
        Check whether an entry needs re-execution.

        An entry is fresh only if it was never invalidated since its last
        success and ``now - fetched_at < stale_time``.

        Args:
            entry: Entry to check
            stale_time: Caller's tolerance (defaults to the entry's own)

        Returns:
            True if a read should trigger an execution
        """
        if entry.is_invalidated or entry.fetched_at is None:
            return True
        window = entry.stale_time if stale_time is None else stale_time
        return self._clock.now() - entry.fetched_at >= window

    def state(self, key: KeyLike, stale_time: Optional[float] = None) -> QueryState:
        """
        Build a view snapshot for a key.

        Absent keys yield an idle state.
        """
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is None:
            return QueryState(key=key)
        return self._snapshot(entry, stale_time)

    def keys(self) -> list[QueryKey]:
        """Get all cache keys."""
        return list(self._entries.keys())

    def find(self, prefix: KeyLike, exact: bool = False) -> list[CacheEntry]:
        """Get every entry whose key matches a prefix."""
        prefix = normalize_key(prefix)
        return [self._entries[k] for k in filter_keys(self._entries.keys(), prefix, exact)]

    def subscriber_count(self, key: KeyLike) -> int:
        """Get the number of active subscribers for a key."""
        return len(self._subscriptions.get(normalize_key(key), {}))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def build(self, key: KeyLike, stale_time: Optional[float] = None) -> CacheEntry:
        """
        Get an entry, creating an idle one if absent.

        Args:
            key: Query key
            stale_time: Freshness window to record on the entry

        Returns:
            Existing or newly created entry
        """
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is not None:
            if stale_time is not None:
                entry.stale_time = stale_time
            return entry

        if len(self._entries) >= self._max_size:
            self._evict_lru()

        entry = CacheEntry(
            key=key,
            stale_time=self._default_stale_time if stale_time is None else stale_time,
            subscriber_count=len(self._subscriptions.get(key, {})),
        )
        self._entries[key] = entry
        logger.debug("Cache entry created for %s", format_key(key))
        return entry

    def put(
        self,
        key: KeyLike,
        status: QueryStatus,
        data: Any = _MISSING,
        error: Optional[BaseException] = None,
    ) -> CacheEntry:
        """
        Record an execution outcome and notify subscribers.

        - LOADING keeps data and error, and clears the invalidated mark
        - SUCCESS stores data, clears error and stamps fetched_at
        - ERROR stores error and keeps data from the prior success

        Args:
            key: Query key
            status: New status
            data: Result (SUCCESS only)
            error: Failure (ERROR only)

        Returns:
            The updated entry
        """
        entry = self.build(key)
        status = QueryStatus(status)

        if status == QueryStatus.SUCCESS:
            if data is _MISSING:
                raise ValueError("SUCCESS requires data")
            entry.data = data
            entry.error = None
            entry.fetched_at = self._clock.now()
            entry.fetch_count += 1
        elif status == QueryStatus.ERROR:
            if error is None:
                raise ValueError("ERROR requires an error")
            entry.error = error
            entry.error_count += 1
        elif status == QueryStatus.LOADING:
            entry.is_invalidated = False

        entry.status = status
        entry.updated_at = datetime.now(timezone.utc)
        logger.debug("Cache %s -> %s", format_key(entry.key), status.value)

        self._notify(entry.key)
        self._collect_if_unused(entry.key)
        return entry

    def set_data(self, key: KeyLike, data: Any) -> CacheEntry:
        """Seed or overwrite an entry's data as a fresh success."""
        return self.put(key, QueryStatus.SUCCESS, data=data)

    def invalidate(self, key_or_prefix: KeyLike, exact: bool = False) -> list[QueryKey]:
        """
        Mark matching entries stale without deleting their data.

        Subscribers of every affected key are notified synchronously, so
        subscribed views can re-execute immediately.

        Args:
            key_or_prefix: Target key, or prefix of the keys to invalidate
            exact: Only invalidate the key itself

        Returns:
            List of invalidated keys
        """
        target = normalize_key(key_or_prefix)
        matched = filter_keys(list(self._entries.keys()), target, exact)

        for key in matched:
            self._entries[key].is_invalidated = True
            self._stats.invalidations += 1

        if matched:
            logger.debug(
                "Invalidated %d entr%s under %s",
                len(matched),
                "y" if len(matched) == 1 else "ies",
                format_key(target),
            )

        for key in matched:
            if key in self._entries:
                self._notify(key)

        return matched

    def remove(self, key: KeyLike) -> bool:
        """
        Remove an entry regardless of subscribers.

        Returns:
            True if the entry existed and was removed
        """
        key = normalize_key(key)
        self._cancel_gc(key)
        entry = self._entries.pop(key, None)
        if entry is None:
            return False

        self._stats.evictions += 1
        logger.debug("Cache entry removed for %s", format_key(key))
        return True

    def clear(self) -> int:
        """
        Drop every entry, cancel pending executions and eviction timers.

        Subscriptions are kept: handles stay valid and are notified with
        the idle state of their key.

        Returns:
            Number of entries cleared
        """
        for timer in self._gc_timers.values():
            timer.cancel()
        self._gc_timers.clear()

        count = len(self._entries)
        for entry in self._entries.values():
            if entry.in_flight is not None and not entry.in_flight.done():
                entry.in_flight.cancel()
        dropped = [key for key in self._entries if key in self._subscriptions]
        self._entries.clear()

        for key in dropped:
            self._notify(key)
        return count

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        key: KeyLike,
        callback: CacheCallback,
        stale_time: Optional[float] = None,
    ) -> CacheSubscription:
        """
        Register a callback for state changes on a key.

        Args:
            key: Key to watch
            callback: Called with a QueryState on every change
            stale_time: The subscriber's staleness tolerance

        Returns:
            Handle to pass to ``unsubscribe``
        """
        key = normalize_key(key)
        sub = CacheSubscription(key=key, stale_time=stale_time)

        self._subscriptions.setdefault(key, {})[sub.id] = sub
        self._callbacks[sub.id] = callback
        self._cancel_gc(key)

        entry = self._entries.get(key)
        if entry is not None:
            entry.subscriber_count = len(self._subscriptions[key])

        return sub

    def unsubscribe(self, handle: CacheSubscription) -> bool:
        """
        Remove a subscription.

        When the last subscriber of a key leaves, the entry is scheduled for
        eviction after the grace period.

        Args:
            handle: Handle returned by ``subscribe``

        Returns:
            True if subscription existed and was removed
        """
        subs = self._subscriptions.get(handle.key)
        if subs is None or subs.pop(handle.id, None) is None:
            return False

        handle.active = False
        self._callbacks.pop(handle.id, None)
        if not subs:
            del self._subscriptions[handle.key]

        entry = self._entries.get(handle.key)
        if entry is not None:
            entry.subscriber_count = len(subs)
        self._collect_if_unused(handle.key)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _snapshot(self, entry: CacheEntry, stale_time: Optional[float] = None) -> QueryState:
        return QueryState(
            key=entry.key,
            status=entry.status,
            data=entry.data,
            error=entry.error,
            fetched_at=entry.fetched_at,
            is_fetching=entry.in_flight is not None,
            is_stale=self.is_stale(entry, stale_time),
            is_invalidated=entry.is_invalidated,
        )

    def _notify(self, key: QueryKey) -> int:
        """Deliver the current state of a key to its subscribers."""
        entry = self._entries.get(key)
        # Copy, callbacks may subscribe or unsubscribe
        to_notify = list(self._subscriptions.get(key, {}).values())

        count = 0
        for sub in to_notify:
            callback = self._callbacks.get(sub.id)
            if callback is None or not sub.active:
                continue

            state = self._snapshot(entry, sub.stale_time) if entry is not None else QueryState(key=key)
            try:
                callback(state)
            except Exception:
                logger.exception("Subscriber %s failed on %s", sub.id, format_key(key))
                continue
            sub.events_delivered += 1
            count += 1

        self._stats.notifications += count
        return count

    def _collect_if_unused(self, key: QueryKey) -> None:
        """Schedule eviction for an entry nobody is using."""
        entry = self._entries.get(key)
        if entry is None or key in self._gc_timers:
            return
        if self._subscriptions.get(key) or entry.in_flight is not None:
            return

        if self._gc_time <= 0:
            self.remove(key)
            return

        self._gc_timers[key] = self._clock.call_later(self._gc_time, lambda: self._gc(key))

    def _gc(self, key: QueryKey) -> None:
        self._gc_timers.pop(key, None)
        entry = self._entries.get(key)
        if entry is None:
            return
        if self._subscriptions.get(key) or entry.in_flight is not None:
            return
        self.remove(key)

    def _cancel_gc(self, key: QueryKey) -> None:
        timer = self._gc_timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _evict_lru(self) -> None:
        """Evict the least recently used entry that nobody is using."""
        candidates = [
            k for k, e in self._entries.items()
            if not self._subscriptions.get(k) and e.in_flight is None
        ]
        if not candidates:
            return

        lru_key = min(candidates, key=lambda k: self._entries[k].accessed_at)
        self.remove(lru_key)

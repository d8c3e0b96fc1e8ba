"""
Query coordination for dashsync.

Resolves a logical data request to a cache entry and decides whether a
remote execution is needed. Concurrent identical requests share a single
execution (single-flight).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from dashsync.core.errors import TransportFailure, ValidationFailure
from dashsync.core.keys import KeyLike, QueryKey, format_key, normalize_key
from dashsync.core.models import CacheEntry, QueryStatus
from dashsync.runtime.cache import QueryCache


logger = logging.getLogger(__name__)

# An executor performs one remote read
Executor = Callable[[], Awaitable[Any]]


class QueryCoordinator:
    """
    Triggers executions for absent or stale entries.

    Usage:
        ```python
        queries = QueryCoordinator(cache)

        # Starts one execution; the second call attaches to it
        queries.request(("campaigns",), api.list_campaigns, stale_time=30.0)
        queries.request(("campaigns",), api.list_campaigns, stale_time=30.0)

        campaigns = await queries.fetch(("campaigns",), api.list_campaigns)
        ```
    """

    def __init__(
        self,
        cache: QueryCache,
        retry: int = 1,
        retry_delay: float = 1.0,
    ):
        """
        Initialize the coordinator.

        Args:
            cache: Store the results are written to
            retry: Default silent retries after a failed execution
            retry_delay: Default seconds between attempts
        """
        self._cache = cache
        self._retry = retry
        self._retry_delay = retry_delay
        self._executions = 0

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def executions(self) -> int:
        """Number of executions started by this coordinator."""
        return self._executions

    def request(
        self,
        key: KeyLike,
        executor: Executor,
        *,
        stale_time: Optional[float] = None,
        enabled: bool = True,
        retry: Optional[int] = None,
        retry_delay: Optional[float] = None,
        force: bool = False,
    ) -> Optional[CacheEntry]:
        """
        Resolve a request against the cache, executing when needed.

        Args:
            key: Query key
            executor: Coroutine function performing the remote read
            stale_time: Freshness window for this request
            enabled: When False, nothing executes and the entry is returned as is
            retry: Silent retries after the first failure
            retry_delay: Seconds between attempts
            force: Execute even if the entry is fresh

        Returns:
            The entry, or None if disabled and absent
        """
        key = normalize_key(key)

        if not enabled:
            return self._cache.get(key)

        entry = self._cache.build(key, stale_time)

        if entry.in_flight is not None:
            logger.debug("Attaching to in-flight execution for %s", format_key(key))
            return entry

        if force or self._cache.is_stale(entry, stale_time):
            self._start(entry, executor, retry, retry_delay)

        return entry

    async def fetch(
        self,
        key: KeyLike,
        executor: Executor,
        **options: Any,
    ) -> Any:
        """
        Request a key and wait for its data.

        Args:
            key: Query key
            executor: Coroutine function performing the remote read
            **options: Passed to ``request``

        Returns:
            The cached or freshly fetched data. Data still inside its
            freshness window is returned even if a later refresh failed.

        Raises:
            TransportFailure: The execution was cancelled (session reset)
            Exception: The failure stored on the entry, if the execution failed
        """
        entry = self.request(key, executor, **options)
        if entry is None:
            return None

        # A subscriber may start a follow-up execution as soon as one settles
        while entry.in_flight is not None:
            task = entry.in_flight
            await asyncio.wait({task})
            if task.cancelled():
                raise TransportFailure(f"Query {format_key(entry.key)} was cancelled")
            entry = self._cache.peek(entry.key) or entry
            if entry.in_flight is task:
                break

        if entry.status == QueryStatus.ERROR:
            if entry.has_data and not self._cache.is_stale(entry, options.get("stale_time")):
                return entry.data
            raise entry.error
        return entry.data

    async def wait(self, key: KeyLike) -> None:
        """
        Wait for the pending execution of a key, if any.

        Never raises: a cancelled execution (e.g. on session reset) just
        ends the wait, and cancelling the waiter leaves the execution running.
        """
        entry = self._cache.peek(key)
        if entry is None or entry.in_flight is None:
            return
        await asyncio.wait({entry.in_flight})

    def _start(
        self,
        entry: CacheEntry,
        executor: Executor,
        retry: Optional[int],
        retry_delay: Optional[float],
    ) -> None:
        attempts = 1 + (self._retry if retry is None else retry)
        delay = self._retry_delay if retry_delay is None else retry_delay

        task = asyncio.get_running_loop().create_task(
            self._execute(entry.key, executor, attempts, delay)
        )
        entry.in_flight = task
        self._executions += 1
        logger.debug("Executing %s", format_key(entry.key))
        self._cache.put(entry.key, QueryStatus.LOADING)

    async def _execute(
        self,
        key: QueryKey,
        executor: Executor,
        attempts: int,
        delay: float,
    ) -> None:
        try:
            data = await self._run_with_retry(key, executor, attempts, delay)
        except asyncio.CancelledError:
            self._settle(key)
            raise
        except Exception as exc:
            logger.warning("Query %s failed: %r", format_key(key), exc)
            if self._settle(key):
                self._cache.put(key, QueryStatus.ERROR, error=exc)
            return

        if self._settle(key):
            self._cache.put(key, QueryStatus.SUCCESS, data=data)

    async def _run_with_retry(
        self,
        key: QueryKey,
        executor: Executor,
        attempts: int,
        delay: float,
    ) -> Any:
        for attempt in range(1, attempts + 1):
            try:
                return await executor()
            except ValidationFailure:
                raise
            except Exception as exc:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Query %s failed (attempt %d/%d), retrying: %r",
                    format_key(key), attempt, attempts, exc,
                )
                if delay > 0:
                    await self._cache.clock.sleep(delay)

    def _settle(self, key: QueryKey) -> bool:
        """
        Clear the in-flight marker of the current task's entry.

        Returns:
            False if the entry was removed or replaced while executing
        """
        entry = self._cache.peek(key)
        if entry is None or entry.in_flight is not asyncio.current_task():
            return False
        entry.in_flight = None
        return True

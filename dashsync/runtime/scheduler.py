"""
Time-driven refresh for polled queries.

The monitoring surface has no push channel, so freshness comes from
forcing an invalidation every interval while someone is watching.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from dashsync.core.clock import Clock
from dashsync.core.keys import KeyLike, QueryKey, format_key, normalize_key
from dashsync.runtime.cache import QueryCache


logger = logging.getLogger(__name__)


class ScheduledPoll(BaseModel):
    """A repeating invalidation of one key."""

    key: QueryKey = Field(..., description="Polled key")
    interval: float = Field(..., gt=0, description="Seconds between ticks")
    intervals: list[float] = Field(default_factory=list, description="Interval requested by each holder")
    ticks: int = Field(default=0, description="Invalidations issued")
    timer: Optional[Any] = Field(default=None, description="Pending tick (TimerHandle)")

    model_config = {"extra": "forbid", "arbitrary_types_allowed": True}

    @property
    def holders(self) -> int:
        """Subscribers requesting this poll."""
        return len(self.intervals)


class RefreshScheduler:
    """
    Reference-counted polling per key.

    Each tick calls ``QueryCache.invalidate(key, exact=True)``; subscribed
    views react to that notification by re-executing. Polling does not
    suppress invalidations coming from mutations.

    Usage:
        ```python
        scheduler = RefreshScheduler(cache)
        scheduler.schedule_poll(("monitoring", "overview"), 15.0)
        ...
        scheduler.cancel_poll(("monitoring", "overview"))  # last holder: timer stops
        ```
    """

    def __init__(self, cache: QueryCache, clock: Optional[Clock] = None):
        """
        Initialize the scheduler.

        Args:
            cache: Store to invalidate
            clock: Time source (defaults to the cache's clock)
        """
        self._cache = cache
        self._clock = clock or cache.clock
        self._polls: dict[QueryKey, ScheduledPoll] = {}

    def schedule_poll(self, key: KeyLike, interval: float) -> ScheduledPoll:
        """
        Add a holder for a key's poll, arming the timer on the first one.

        The poll runs at the shortest interval among its holders.

        Args:
            key: Key to refresh
            interval: Seconds between invalidations

        Returns:
            The poll record
        """
        key = normalize_key(key)
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")

        poll = self._polls.get(key)
        if poll is None:
            poll = ScheduledPoll(key=key, interval=interval, intervals=[interval])
            self._polls[key] = poll
            self._arm(poll)
            logger.debug("Polling %s every %.1fs", format_key(key), interval)
            return poll

        poll.intervals.append(interval)
        self._retune(poll)
        return poll

    def cancel_poll(self, key: KeyLike, interval: Optional[float] = None) -> bool:
        """
        Remove a holder; the last removal stops the timer.

        When the departing holder had the shortest interval, the poll slows
        back down to the shortest remaining one.

        Args:
            key: Polled key
            interval: The holder's requested interval (defaults to the most
                recently added holder)

        Returns:
            True if a holder was removed
        """
        key = normalize_key(key)
        poll = self._polls.get(key)
        if poll is None:
            return False

        if interval is not None and interval in poll.intervals:
            poll.intervals.remove(interval)
        else:
            poll.intervals.pop()

        if not poll.intervals:
            self._disarm(poll)
            del self._polls[key]
            logger.debug("Stopped polling %s", format_key(key))
            return True

        self._retune(poll)
        return True

    def cancel_all(self) -> int:
        """
        Stop every poll.

        Returns:
            Number of polls stopped
        """
        count = len(self._polls)
        for poll in self._polls.values():
            self._disarm(poll)
        self._polls.clear()
        return count

    def get_poll(self, key: KeyLike) -> Optional[ScheduledPoll]:
        return self._polls.get(normalize_key(key))

    def active_polls(self) -> list[QueryKey]:
        return list(self._polls.keys())

    def _retune(self, poll: ScheduledPoll) -> None:
        """Re-arm the timer if the shortest requested interval changed."""
        interval = min(poll.intervals)
        if interval == poll.interval:
            return
        poll.interval = interval
        self._disarm(poll)
        self._arm(poll)
        logger.debug("Polling %s every %.1fs", format_key(poll.key), interval)

    def _arm(self, poll: ScheduledPoll) -> None:
        poll.timer = self._clock.call_later(poll.interval, lambda: self._tick(poll.key))

    def _disarm(self, poll: ScheduledPoll) -> None:
        if poll.timer is not None:
            poll.timer.cancel()
            poll.timer = None

    def _tick(self, key: QueryKey) -> None:
        poll = self._polls.get(key)
        if poll is None:
            return

        poll.timer = None
        poll.ticks += 1
        self._cache.invalidate(key, exact=True)

        # A listener may have cancelled the poll during invalidation
        if self._polls.get(key) is poll and poll.timer is None:
            self._arm(poll)

"""
Core primitives for dashsync.

- Query keys and prefix matching
- Entry and mutation state models
- Error taxonomy
- Session configuration and the clock
"""

from dashsync.core.clock import Clock, LoopClock
from dashsync.core.config import QueryClientConfig
from dashsync.core.errors import DashSyncError, TransportFailure, ValidationFailure
from dashsync.core.keys import QueryKey, matches_prefix, normalize_key
from dashsync.core.models import (
    CacheEntry,
    MutationState,
    MutationStatus,
    QueryState,
    QueryStatus,
)

__all__ = [
    "Clock",
    "LoopClock",
    "QueryClientConfig",
    "DashSyncError",
    "TransportFailure",
    "ValidationFailure",
    "QueryKey",
    "matches_prefix",
    "normalize_key",
    "CacheEntry",
    "MutationState",
    "MutationStatus",
    "QueryState",
    "QueryStatus",
]

"""
Runtime layer for dashsync.

Provides execution-time features:
- Query cache with stale-while-revalidate
- Single-flight query execution
- Mutations with declared invalidation
- Polling
- Live (reactive) queries
"""

from dashsync.runtime.cache import CacheStats, CacheSubscription, QueryCache
from dashsync.runtime.query import QueryCoordinator
from dashsync.runtime.mutation import Mutation, MutationCoordinator, MutationDescriptor
from dashsync.runtime.scheduler import RefreshScheduler, ScheduledPoll
from dashsync.runtime.subscription import LiveQuery

__all__ = [
    "CacheStats",
    "CacheSubscription",
    "QueryCache",
    "QueryCoordinator",
    "Mutation",
    "MutationCoordinator",
    "MutationDescriptor",
    "RefreshScheduler",
    "ScheduledPoll",
    "LiveQuery",
]

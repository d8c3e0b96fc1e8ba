"""
dashsync - client-side data synchronization for the Campaign Express dashboard.

Views declare the data they need by query key and receive cached results
that stay fresh on their own: concurrent identical requests share one
remote call, writes invalidate the keys they affect, and polled surfaces
refresh on a timer. There is no server push; all freshness is pull-driven.

Layers:
- Core: keys, state models, errors, configuration
- Runtime: cache, query/mutation coordinators, scheduler, live queries
- Interface: QueryClient session, API client, dashboard surfaces
"""
from dashsync.core.config import QueryClientConfig
from dashsync.core.errors import DashSyncError, TransportFailure, ValidationFailure
from dashsync.core.keys import QueryKey
from dashsync.core.models import CacheEntry, MutationStatus, QueryState, QueryStatus
from dashsync.runtime.cache import QueryCache
from dashsync.runtime.query import QueryCoordinator
from dashsync.runtime.mutation import Mutation, MutationCoordinator, MutationDescriptor
from dashsync.runtime.scheduler import RefreshScheduler
from dashsync.runtime.subscription import LiveQuery
from dashsync.interface.client import QueryClient
from dashsync.interface.api_client import ApiClientError, CampaignExpressClient

__version__ = "0.1.0"

__all__ = [
    # Config
    "QueryClientConfig",
    # Errors
    "DashSyncError",
    "TransportFailure",
    "ValidationFailure",
    # State
    "QueryKey",
    "CacheEntry",
    "QueryState",
    "QueryStatus",
    "MutationStatus",
    # Runtime
    "QueryCache",
    "QueryCoordinator",
    "Mutation",
    "MutationCoordinator",
    "MutationDescriptor",
    "RefreshScheduler",
    "LiveQuery",
    # Client
    "QueryClient",
    "ApiClientError",
    "CampaignExpressClient",
]

"""
Interface layer for dashsync.

Provides the session client views talk to, the Campaign Express API
client, and the per-surface query/mutation helpers.
"""

from dashsync.interface.client import QueryClient
from dashsync.interface.api_client import ApiClientError, CampaignExpressClient

__all__ = [
    "QueryClient",
    "ApiClientError",
    "CampaignExpressClient",
]

"""
Dashboard data surfaces.

One function per view dependency. Each wires a remote data client call to
a query key with its freshness policy, or a write to the keys it
invalidates:

    Query                         Key                             Policy
    use_campaigns                 ("campaigns",)                  stale 30s
    use_campaign(id)              ("campaigns", id)               enabled iff id
    use_loyalty_balance(user)     ("loyalty", "balance", user)    stale 60s, enabled iff user
    use_monitoring_overview       ("monitoring", "overview")      poll 15s, stale 10s
    use_cdp_platforms             ("cdp-platforms",)
    use_cdp_sync_history          ("cdp-sync-history",)

    Mutation                      Invalidates
    create/pause/resume/delete    ("campaigns",) and everything under it
    earn/redeem stars             ("loyalty", "balance", variables.user_id)
"""

from __future__ import annotations

from typing import Any, Optional

from dashsync.core.keys import QueryKey
from dashsync.interface.api_client import CampaignExpressClient
from dashsync.interface.client import QueryClient
from dashsync.runtime.mutation import Mutation
from dashsync.runtime.subscription import LiveQuery, StateCallback


CAMPAIGNS_KEY: QueryKey = ("campaigns",)
MONITORING_OVERVIEW_KEY: QueryKey = ("monitoring", "overview")
CDP_PLATFORMS_KEY: QueryKey = ("cdp-platforms",)
CDP_SYNC_HISTORY_KEY: QueryKey = ("cdp-sync-history",)

CAMPAIGNS_STALE_TIME = 30.0
LOYALTY_STALE_TIME = 60.0
MONITORING_STALE_TIME = 10.0
MONITORING_REFETCH_INTERVAL = 15.0


def campaign_key(campaign_id: str) -> QueryKey:
    return ("campaigns", campaign_id)


def loyalty_balance_key(user_id: str) -> QueryKey:
    return ("loyalty", "balance", user_id)


def _user_id(variables: Any) -> str:
    if isinstance(variables, dict):
        return variables["user_id"]
    return variables.user_id


# =============================================================================
# Campaigns
# =============================================================================

def use_campaigns(
    client: QueryClient,
    api: CampaignExpressClient,
    on_change: Optional[StateCallback] = None,
) -> LiveQuery:
    return client.use_live_query(
        CAMPAIGNS_KEY,
        api.list_campaigns,
        stale_time=CAMPAIGNS_STALE_TIME,
        on_change=on_change,
    )


def use_campaign(
    client: QueryClient,
    api: CampaignExpressClient,
    campaign_id: str,
    on_change: Optional[StateCallback] = None,
) -> LiveQuery:
    """Single campaign; does not fetch until the id is known."""
    return client.use_live_query(
        campaign_key(campaign_id),
        lambda: api.get_campaign(campaign_id),
        enabled=bool(campaign_id),
        on_change=on_change,
    )


def use_create_campaign(client: QueryClient, api: CampaignExpressClient) -> Mutation:
    return client.use_mutation(api.create_campaign, invalidates=[CAMPAIGNS_KEY], name="create_campaign")


def use_pause_campaign(client: QueryClient, api: CampaignExpressClient) -> Mutation:
    return client.use_mutation(api.pause_campaign, invalidates=[CAMPAIGNS_KEY], name="pause_campaign")


def use_resume_campaign(client: QueryClient, api: CampaignExpressClient) -> Mutation:
    return client.use_mutation(api.resume_campaign, invalidates=[CAMPAIGNS_KEY], name="resume_campaign")


def use_delete_campaign(client: QueryClient, api: CampaignExpressClient) -> Mutation:
    return client.use_mutation(api.delete_campaign, invalidates=[CAMPAIGNS_KEY], name="delete_campaign")


# =============================================================================
# Loyalty
# =============================================================================

def use_loyalty_balance(
    client: QueryClient,
    api: CampaignExpressClient,
    user_id: str,
    on_change: Optional[StateCallback] = None,
) -> LiveQuery:
    """Loyalty balance of one user; does not fetch until the user is known."""
    return client.use_live_query(
        loyalty_balance_key(user_id),
        lambda: api.get_loyalty_balance(user_id),
        stale_time=LOYALTY_STALE_TIME,
        enabled=bool(user_id),
        on_change=on_change,
    )


def use_earn_stars(client: QueryClient, api: CampaignExpressClient) -> Mutation:
    """Only the earning user's balance is invalidated."""
    return client.use_mutation(
        api.earn_stars,
        invalidates=lambda variables, _result: [loyalty_balance_key(_user_id(variables))],
        name="earn_stars",
    )


def use_redeem_stars(client: QueryClient, api: CampaignExpressClient) -> Mutation:
    return client.use_mutation(
        api.redeem_stars,
        invalidates=lambda variables, _result: [loyalty_balance_key(_user_id(variables))],
        name="redeem_stars",
    )


# =============================================================================
# Monitoring
# =============================================================================

def use_monitoring_overview(
    client: QueryClient,
    api: CampaignExpressClient,
    on_change: Optional[StateCallback] = None,
) -> LiveQuery:
    """Real-time overview, refreshed every 15 seconds while watched."""
    return client.use_live_query(
        MONITORING_OVERVIEW_KEY,
        api.get_overview,
        stale_time=MONITORING_STALE_TIME,
        refetch_interval=MONITORING_REFETCH_INTERVAL,
        on_change=on_change,
    )


# =============================================================================
# CDP
# =============================================================================

def use_cdp_platforms(
    client: QueryClient,
    api: CampaignExpressClient,
    on_change: Optional[StateCallback] = None,
) -> LiveQuery:
    return client.use_live_query(CDP_PLATFORMS_KEY, api.list_cdp_platforms, on_change=on_change)


def use_cdp_sync_history(
    client: QueryClient,
    api: CampaignExpressClient,
    on_change: Optional[StateCallback] = None,
) -> LiveQuery:
    return client.use_live_query(CDP_SYNC_HISTORY_KEY, api.get_cdp_sync_history, on_change=on_change)

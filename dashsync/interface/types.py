"""
Payload models for the Campaign Express management API.

These are the shapes the remote data client returns and accepts. Unknown
fields from the server are ignored so new API fields do not break views.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DRAFT = "draft"
    COMPLETED = "completed"
    ERROR = "error"


class Pacing(str, Enum):
    EVEN = "even"
    ACCELERATED = "accelerated"
    ASAP = "asap"


class LoyaltyTier(str, Enum):
    GREEN = "green"
    GOLD = "gold"
    RESERVE = "reserve"


class _Payload(BaseModel):
    model_config = {"extra": "ignore"}


class CampaignTargeting(_Payload):
    geo: list[str] = Field(default_factory=list)
    segments: list[str] = Field(default_factory=list)
    devices: list[str] = Field(default_factory=list)
    floor_price: float = 0.0


class CampaignStats(_Payload):
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    spend: float = 0.0
    ctr: float = 0.0
    win_rate: float = 0.0


class CampaignCreate(_Payload):
    """Input of the create-campaign mutation."""

    name: str
    budget: float
    daily_budget: float
    pacing: Pacing = Pacing.EVEN
    targeting: CampaignTargeting = Field(default_factory=CampaignTargeting)
    schedule_start: Optional[str] = None
    schedule_end: Optional[str] = None


class Campaign(CampaignCreate):
    id: str
    status: CampaignStatus = CampaignStatus.DRAFT
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    stats: CampaignStats = Field(default_factory=CampaignStats)


class MonitoringOverview(_Payload):
    total_campaigns: int = 0
    active_campaigns: int = 0
    total_impressions: int = 0
    total_clicks: int = 0
    total_spend: float = 0.0
    avg_ctr: float = 0.0
    avg_latency_us: float = 0.0
    active_pods: int = 0
    offers_per_hour: float = 0.0
    cache_hit_rate: float = 0.0
    no_bid_rate: float = 0.0
    error_rate: float = 0.0


class LoyaltyBalance(_Payload):
    user_id: str
    tier: LoyaltyTier = LoyaltyTier.GREEN
    stars_balance: int = 0
    stars_qualifying: int = 0
    lifetime_stars: int = 0
    total_redemptions: int = 0
    next_tier_progress: float = 0.0


class LoyaltyEarnRequest(_Payload):
    user_id: str
    amount_cents: int
    category: str
    store_id: Optional[str] = None


class LoyaltyRedeemRequest(_Payload):
    user_id: str
    stars: int
    reward_id: str


class CdpPlatformConfig(_Payload):
    platform: str
    api_endpoint: str = ""
    enabled: bool = False
    sync_interval_secs: int = 0
    batch_size: int = 0
    field_mappings: dict[str, str] = Field(default_factory=dict)


class SyncEvent(_Payload):
    id: str
    platform: str
    direction: str
    record_count: int = 0
    status: str
    started_at: str
    completed_at: Optional[str] = None
    error: Optional[str] = None


class LoginResponse(_Payload):
    token: str


class ApiErrorBody(_Payload):
    error: Optional[str] = None
    message: Optional[str] = None
    status: Optional[int] = None
    details: Optional[Any] = None

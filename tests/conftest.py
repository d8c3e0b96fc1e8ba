"""
Pytest configuration and shared fixtures for dashsync tests.

This module provides a manually advanced clock, a fake Campaign Express
API, and session fixtures wired to both.
"""

import asyncio
from typing import Any, Callable

import pytest

from dashsync.core.config import QueryClientConfig
from dashsync.core.errors import TransportFailure
from dashsync.interface.client import QueryClient
from dashsync.interface.types import Campaign, LoyaltyBalance, MonitoringOverview
from dashsync.runtime.cache import QueryCache


# =============================================================================
# Clock
# =============================================================================

class ManualTimer:
    """Timer handle returned by ManualClock.call_later."""

    def __init__(self, when: float, callback: Callable[[], Any]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """
    Clock whose time only moves when a test advances it.

    Timers due within an advance fire in order, each seeing ``now()`` at
    its own due time.
    """

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._timers: list[ManualTimer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ManualTimer:
        timer = ManualTimer(self._now + delay, callback)
        self._timers.append(timer)
        return timer

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()

        def wake() -> None:
            if not future.done():
                future.set_result(None)

        self.call_later(delay, wake)
        await future

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self._timers.remove(timer)
            self._now = max(self._now, timer.when)
            timer.callback()
        self._now = target

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def cache(clock):
    return QueryCache(clock=clock, gc_time=5.0, default_stale_time=30.0)


@pytest.fixture
def config():
    return QueryClientConfig(stale_time=30.0, gc_time=5.0, retry=0, retry_delay=0.0)


@pytest.fixture
def client(config, clock):
    session = QueryClient(config, clock=clock)
    yield session
    session.close()


# =============================================================================
# Executors
# =============================================================================

class CountingExecutor:
    """Async executor that counts calls and can be held open or made to fail."""

    def __init__(self, result: Any = "data"):
        self.result = result
        self.calls = 0
        self.failures: list[BaseException] = []
        self.gate: asyncio.Event | None = None

    def hold(self) -> None:
        self.gate = asyncio.Event()

    def release(self) -> None:
        if self.gate is not None:
            self.gate.set()

    async def __call__(self) -> Any:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        if callable(self.result):
            return self.result()
        return self.result


@pytest.fixture
def executor():
    return CountingExecutor()


# =============================================================================
# Fake API
# =============================================================================

class FakeCampaignApi:
    """In-memory stand-in for CampaignExpressClient with call counters."""

    def __init__(self):
        self.campaigns: list[Campaign] = [
            Campaign(id="1", name="Spring Sale", budget=1000.0, daily_budget=100.0),
            Campaign(id="7", name="Loyalty Push", budget=500.0, daily_budget=50.0),
        ]
        self.balances: dict[str, int] = {"u1": 100, "u2": 250}
        self.calls: dict[str, int] = {}
        self.fail_next: dict[str, BaseException] = {}

    def _hit(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.fail_next:
            raise self.fail_next.pop(name)

    async def list_campaigns(self) -> list[Campaign]:
        self._hit("list_campaigns")
        return list(self.campaigns)

    async def get_campaign(self, campaign_id: str) -> Campaign:
        self._hit("get_campaign")
        for campaign in self.campaigns:
            if campaign.id == campaign_id:
                return campaign
        raise TransportFailure("Campaign not found", status=404)

    async def create_campaign(self, data: dict) -> Campaign:
        self._hit("create_campaign")
        campaign = Campaign(id=str(len(self.campaigns) + 100), **data)
        self.campaigns.append(campaign)
        return campaign

    async def pause_campaign(self, campaign_id: str) -> Campaign:
        self._hit("pause_campaign")
        return await self._set_status(campaign_id, "paused")

    async def resume_campaign(self, campaign_id: str) -> Campaign:
        self._hit("resume_campaign")
        return await self._set_status(campaign_id, "active")

    async def delete_campaign(self, campaign_id: str) -> None:
        self._hit("delete_campaign")
        self.campaigns = [c for c in self.campaigns if c.id != campaign_id]

    async def _set_status(self, campaign_id: str, status: str) -> Campaign:
        for i, campaign in enumerate(self.campaigns):
            if campaign.id == campaign_id:
                self.campaigns[i] = campaign.model_copy(update={"status": status})
                return self.campaigns[i]
        raise TransportFailure("Campaign not found", status=404)

    async def get_loyalty_balance(self, user_id: str) -> LoyaltyBalance:
        self._hit("get_loyalty_balance")
        return LoyaltyBalance(user_id=user_id, stars_balance=self.balances.get(user_id, 0))

    async def earn_stars(self, data: dict) -> LoyaltyBalance:
        self._hit("earn_stars")
        user_id = data["user_id"]
        self.balances[user_id] = self.balances.get(user_id, 0) + data["amount_cents"] // 100
        return LoyaltyBalance(user_id=user_id, stars_balance=self.balances[user_id])

    async def redeem_stars(self, data: dict) -> LoyaltyBalance:
        self._hit("redeem_stars")
        user_id = data["user_id"]
        self.balances[user_id] = self.balances.get(user_id, 0) - data["stars"]
        return LoyaltyBalance(user_id=user_id, stars_balance=self.balances[user_id])

    async def get_overview(self) -> MonitoringOverview:
        self._hit("get_overview")
        return MonitoringOverview(
            total_campaigns=len(self.campaigns),
            active_campaigns=sum(1 for c in self.campaigns if c.status == "active"),
        )

    async def list_cdp_platforms(self) -> list:
        self._hit("list_cdp_platforms")
        return []

    async def get_cdp_sync_history(self) -> list:
        self._hit("get_cdp_sync_history")
        return []


@pytest.fixture
def api():
    return FakeCampaignApi()

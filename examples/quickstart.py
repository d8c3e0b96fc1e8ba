"""
dashsync Quickstart Example

This example demonstrates the core concepts of the dashboard data layer:

1. Live queries that share one cache entry per key
2. Single-flight execution of concurrent identical reads
3. Mutations that invalidate exactly the keys they affect
4. Polling for real-time views

It runs against an in-memory API so no server is needed.
"""

import asyncio
import logging

from dashsync import QueryClient, QueryClientConfig
from dashsync.interface import hooks
from dashsync.interface.types import Campaign, LoyaltyBalance, MonitoringOverview


class InMemoryApi:
    """Tiny stand-in for CampaignExpressClient."""

    def __init__(self):
        self.campaigns = [Campaign(id="1", name="Spring Sale", budget=1000.0, daily_budget=100.0)]
        self.balances = {"u1": 100}
        self.reads = 0

    async def list_campaigns(self):
        self.reads += 1
        await asyncio.sleep(0.05)
        return list(self.campaigns)

    async def create_campaign(self, data):
        campaign = Campaign(id=str(len(self.campaigns) + 1), **data)
        self.campaigns.append(campaign)
        return campaign

    async def get_loyalty_balance(self, user_id):
        return LoyaltyBalance(user_id=user_id, stars_balance=self.balances[user_id])

    async def earn_stars(self, data):
        self.balances[data["user_id"]] += data["amount_cents"] // 100
        return LoyaltyBalance(user_id=data["user_id"], stars_balance=self.balances[data["user_id"]])

    async def get_overview(self):
        return MonitoringOverview(total_campaigns=len(self.campaigns))


async def main():
    logging.basicConfig(level=logging.INFO)

    print("=" * 60)
    print("dashsync Quickstart")
    print("=" * 60)

    api = InMemoryApi()
    client = QueryClient(QueryClientConfig(retry=0))

    # ==========================================================================
    # Live queries share one execution
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 1: Two views, one request")
    print("-" * 40)

    sidebar = hooks.use_campaigns(client, api)
    table = hooks.use_campaigns(client, api, on_change=lambda s: print(f"  table -> {s.status.value}"))
    await table.wait()
    print(f"Remote reads: {api.reads}, campaigns: {len(sidebar.data)}")

    # ==========================================================================
    # Mutations invalidate what they touch
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 2: Create a campaign")
    print("-" * 40)

    create = hooks.use_create_campaign(client, api)
    await create.mutate({"name": "Summer", "budget": 2000.0, "daily_budget": 200.0})
    await table.wait()
    print(f"Remote reads: {api.reads}, campaigns: {len(table.data)}")

    balance = hooks.use_loyalty_balance(client, api, "u1")
    await balance.wait()
    await hooks.use_earn_stars(client, api).mutate({"user_id": "u1", "amount_cents": 1500})
    await balance.wait()
    print(f"u1 stars after earning: {balance.data.stars_balance}")

    # ==========================================================================
    # Polling
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 3: Monitoring overview")
    print("-" * 40)

    overview = hooks.use_monitoring_overview(client, api)
    await overview.wait()
    print(f"Total campaigns: {overview.data.total_campaigns}")
    print(f"Active polls: {client.scheduler.active_polls()}")

    # ==========================================================================
    # Session reset (logout)
    # ==========================================================================
    dropped = client.reset()
    print(f"\nSession reset, {dropped} entries dropped")
    print(f"Cache stats: hit rate {client.stats.hit_rate:.0%}")

    client.close()


if __name__ == "__main__":
    asyncio.run(main())

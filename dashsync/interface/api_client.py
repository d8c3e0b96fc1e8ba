"""
Campaign Express API client.

Typed async methods for the management REST endpoints the dashboard reads
and writes. Each method performs one remote operation and either returns a
payload model or raises ApiClientError; the query layer treats them as
opaque executors and writers.

HTTP goes through a ``requests.Session``; blocking calls run on a thread
pool so the event loop keeps serving other views meanwhile.

Example:
    ```python
    api = CampaignExpressClient("https://ce.example.com")
    await api.login("admin", "secret")
    campaigns = await api.list_campaigns()
    ```
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional, Union

import requests

from dashsync.core.config import QueryClientConfig
from dashsync.core.errors import TransportFailure
from dashsync.interface.types import (
    ApiErrorBody,
    Campaign,
    CampaignCreate,
    CdpPlatformConfig,
    LoginResponse,
    LoyaltyBalance,
    LoyaltyEarnRequest,
    LoyaltyRedeemRequest,
    MonitoringOverview,
    SyncEvent,
)


logger = logging.getLogger(__name__)


class ApiClientError(TransportFailure):
    """
    Error raised for a failed API call.

    ``status`` is the HTTP status, or 0 when no response arrived.
    """


class CampaignExpressClient:
    """
    Async client for the Campaign Express management API.

    Holds the bearer token for the session. A 401 response clears it.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API origin, e.g. ``https://ce.example.com``
            timeout: Per-request timeout in seconds
            session: Optional preconfigured requests session
            executor: Optional ThreadPoolExecutor for blocking calls
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._executor = executor or ThreadPoolExecutor(max_workers=4)
        self._token: Optional[str] = None

    @classmethod
    def from_config(cls, config: QueryClientConfig, **kwargs: Any) -> "CampaignExpressClient":
        return cls(base_url=config.api_base_url, timeout=config.request_timeout, **kwargs)

    # =========================================================================
    # Auth
    # =========================================================================

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token

    def clear_token(self) -> None:
        self._token = None

    def is_authenticated(self) -> bool:
        return self._token is not None

    async def login(self, username: str, password: str) -> LoginResponse:
        result = LoginResponse.model_validate(
            await self._request(
                "POST",
                "/api/v1/management/auth/login",
                {"username": username, "password": password},
            )
        )
        self.set_token(result.token)
        return result

    def logout(self) -> None:
        self.clear_token()

    # =========================================================================
    # Campaigns
    # =========================================================================

    async def list_campaigns(self) -> list[Campaign]:
        data = await self._request("GET", "/api/v1/management/campaigns")
        return [Campaign.model_validate(item) for item in data or []]

    async def get_campaign(self, campaign_id: str) -> Campaign:
        return Campaign.model_validate(
            await self._request("GET", f"/api/v1/management/campaigns/{campaign_id}")
        )

    async def create_campaign(self, data: Union[CampaignCreate, dict]) -> Campaign:
        return Campaign.model_validate(
            await self._request("POST", "/api/v1/management/campaigns", _dump(data))
        )

    async def pause_campaign(self, campaign_id: str) -> Campaign:
        return Campaign.model_validate(
            await self._request("POST", f"/api/v1/management/campaigns/{campaign_id}/pause")
        )

    async def resume_campaign(self, campaign_id: str) -> Campaign:
        return Campaign.model_validate(
            await self._request("POST", f"/api/v1/management/campaigns/{campaign_id}/resume")
        )

    async def delete_campaign(self, campaign_id: str) -> None:
        await self._request("DELETE", f"/api/v1/management/campaigns/{campaign_id}")

    # =========================================================================
    # Monitoring
    # =========================================================================

    async def get_overview(self) -> MonitoringOverview:
        return MonitoringOverview.model_validate(
            await self._request("GET", "/api/v1/management/monitoring/overview")
        )

    # =========================================================================
    # Loyalty
    # =========================================================================

    async def get_loyalty_balance(self, user_id: str) -> LoyaltyBalance:
        return LoyaltyBalance.model_validate(
            await self._request("GET", f"/v1/loyalty/balance/{user_id}")
        )

    async def earn_stars(self, data: Union[LoyaltyEarnRequest, dict]) -> LoyaltyBalance:
        return LoyaltyBalance.model_validate(
            await self._request("POST", "/v1/loyalty/earn", _dump(data))
        )

    async def redeem_stars(self, data: Union[LoyaltyRedeemRequest, dict]) -> LoyaltyBalance:
        return LoyaltyBalance.model_validate(
            await self._request("POST", "/v1/loyalty/redeem", _dump(data))
        )

    # =========================================================================
    # CDP
    # =========================================================================

    async def list_cdp_platforms(self) -> list[CdpPlatformConfig]:
        data = await self._request("GET", "/api/v1/management/cdp/platforms")
        return [CdpPlatformConfig.model_validate(item) for item in data or []]

    async def get_cdp_sync_history(self) -> list[SyncEvent]:
        data = await self._request("GET", "/api/v1/management/cdp/sync-history")
        return [SyncEvent.model_validate(item) for item in data or []]

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            lambda: self._send(method, path, body),
        )

    def _send(self, method: str, path: str, body: Optional[dict]) -> Any:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = self._session.request(
                method,
                f"{self._base_url}{path}",
                json=body,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiClientError(f"Network error: {e}", status=0) from e

        if response.status_code == 401:
            self.clear_token()
            raise ApiClientError("Unauthorized", status=401)

        if not response.ok:
            error_body = None
            try:
                error_body = ApiErrorBody.model_validate(response.json())
            except ValueError:
                # not JSON
                pass
            message = (
                error_body.message
                if error_body is not None and error_body.message
                else f"Request failed with status {response.status_code}"
            )
            raise ApiClientError(message, status=response.status_code, body=error_body)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def close(self) -> None:
        """Shutdown the executor and HTTP session."""
        self._executor.shutdown(wait=False)
        self._session.close()

    async def __aenter__(self) -> "CampaignExpressClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _dump(data: Any) -> dict:
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json", exclude_none=True)
    return dict(data)

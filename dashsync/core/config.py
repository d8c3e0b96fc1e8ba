"""
Session configuration.

Defaults mirror the dashboard's query client: 30 second freshness window,
one silent retry, short retention for unsubscribed entries.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


ENV_PREFIX = "DASHSYNC_"


class QueryClientConfig(BaseModel):
    """Defaults applied to every query and mutation in a session."""

    stale_time: float = Field(
        default=30.0,
        ge=0,
        description="Seconds a successful result stays fresh",
    )
    gc_time: float = Field(
        default=5.0,
        ge=0,
        description="Seconds an unsubscribed entry is retained before eviction",
    )
    retry: int = Field(
        default=1,
        ge=0,
        description="Silent retries after the first failed execution",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0,
        description="Seconds to wait between retry attempts",
    )
    max_size: int = Field(
        default=1000,
        gt=0,
        description="Maximum number of cache entries",
    )
    api_base_url: str = Field(default="", description="Base URL of the management API")
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout in seconds for the remote data client",
    )

    model_config = {"extra": "forbid"}

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **overrides) -> "QueryClientConfig":
        """
        Build a config from ``DASHSYNC_*`` environment variables.

        Values from a ``.env`` file are loaded first. Explicit keyword
        overrides win over the environment.

        Args:
            dotenv_path: Optional path to a .env file
            **overrides: Field values that take precedence

        Returns:
            Validated configuration
        """
        load_dotenv(dotenv_path)

        values = {}
        for name in cls.model_fields:
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls(**values)

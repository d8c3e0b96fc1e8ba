"""
Core state models for dashsync.

- QueryStatus: lifecycle of a cached execution
- CacheEntry: a cached result with freshness metadata (owned by the store)
- QueryState: immutable snapshot of an entry handed to views
- MutationStatus / MutationState: lifecycle of a write operation

Design Philosophy:
    Views never see a CacheEntry directly. They receive QueryState
    snapshots, so the only way to change cached state is through the
    coordinators.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import ulid
from pydantic import BaseModel, Field

from dashsync.core.keys import QueryKey


def generate_id() -> str:
    """Generate a unique, sortable ID using ULID."""
    return str(ulid.new())


class QueryStatus(str, Enum):
    """Status of a cache entry."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class MutationStatus(str, Enum):
    """Status of a mutation."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class QueryState(BaseModel):
    """
    What a view sees of a cache entry.

    ``data`` from the last success is kept when a later execution fails or
    while a refresh is running.
    """

    key: Optional[QueryKey] = Field(default=None, description="Query key, None if invalid")
    status: QueryStatus = Field(default=QueryStatus.IDLE, description="Entry status")
    data: Any = Field(default=None, description="Last successful result")
    error: Optional[BaseException] = Field(default=None, description="Last failure")
    fetched_at: Optional[float] = Field(default=None, description="Clock time of last success")
    is_fetching: bool = Field(default=False, description="An execution is in flight")
    is_stale: bool = Field(default=True, description="Entry is outside its freshness window")
    is_invalidated: bool = Field(default=False, description="Forced stale since the last execution started")

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def is_loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status == QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == QueryStatus.ERROR


class CacheEntry(BaseModel):
    """
    A cached result with its freshness metadata.

    Invariants:
        - SUCCESS implies data present and error None
        - ERROR implies error present; data from the prior success is kept
        - at most one in_flight execution per key
    """

    key: QueryKey = Field(..., description="Query key")
    status: QueryStatus = Field(default=QueryStatus.IDLE, description="Entry status")
    data: Any = Field(default=None, description="Last successful result")
    error: Optional[BaseException] = Field(default=None, description="Last failure")

    # Freshness
    fetched_at: Optional[float] = Field(default=None, description="Clock time of last success")
    stale_time: float = Field(default=0.0, description="Seconds the result stays fresh")
    is_invalidated: bool = Field(default=False, description="Forced stale by invalidation")

    # Execution tracking
    in_flight: Optional[asyncio.Task] = Field(default=None, description="Pending execution")
    fetch_count: int = Field(default=0, description="Completed successful executions")
    error_count: int = Field(default=0, description="Completed failed executions")

    # Metadata
    subscriber_count: int = Field(default=0, description="Active subscribers")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When this entry was created"
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last state change"
    )
    accessed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last access time"
    )

    model_config = {"extra": "forbid", "arbitrary_types_allowed": True}

    @property
    def has_data(self) -> bool:
        return self.fetched_at is not None

    def touch(self) -> None:
        """Update access time."""
        self.accessed_at = datetime.now(timezone.utc)


class MutationState(BaseModel):
    """Snapshot of a mutation for views."""

    status: MutationStatus = Field(default=MutationStatus.IDLE, description="Mutation status")
    data: Any = Field(default=None, description="Result of the last successful write")
    error: Optional[BaseException] = Field(default=None, description="Failure of the last write")
    variables: Any = Field(default=None, description="Input of the last write")

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def is_loading(self) -> bool:
        return self.status == MutationStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status == MutationStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == MutationStatus.ERROR

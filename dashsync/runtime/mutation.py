"""
Mutation coordination for dashsync.

Writes go through the remote data client exactly once. On success the
mutation's declared invalidation set is marked stale, which makes every
subscribed view of those keys refresh. On failure the cache is untouched.

Key Concepts:
    - MutationDescriptor: a writer plus the keys it invalidates
    - MutationCoordinator: runs writers and applies invalidation
    - Mutation: view-facing handle with loading/error state
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from pydantic import BaseModel, Field

from dashsync.core.keys import KeyLike, QueryKey, format_key, normalize_key
from dashsync.core.models import MutationState, MutationStatus
from dashsync.runtime.cache import QueryCache


logger = logging.getLogger(__name__)

Writer = Callable[..., Awaitable[Any]]
InvalidationResolver = Callable[[Any, Any], Sequence[KeyLike]]
Invalidates = Union[Sequence[KeyLike], InvalidationResolver]
MutationCallback = Callable[[MutationState], None]


class MutationDescriptor(BaseModel):
    """
    A write operation and the keys it makes stale.

    ``invalidates`` is either a fixed list of keys/prefixes or a function of
    ``(variables, result)`` for targets that depend on the input, such as a
    user's loyalty balance.
    """

    writer: Callable[..., Awaitable[Any]] = Field(..., description="Coroutine function performing the write")
    invalidates: Any = Field(default_factory=list, description="Keys, prefixes, or a resolver")
    name: Optional[str] = Field(default=None, description="Label for log messages")

    model_config = {"extra": "forbid", "arbitrary_types_allowed": True}

    def resolve_targets(self, variables: Any, result: Any) -> list[QueryKey]:
        """Resolve the invalidation set for one invocation."""
        targets = self.invalidates
        if callable(targets):
            targets = targets(variables, result)
        return [normalize_key(t) for t in targets]


class MutationCoordinator:
    """
    Executes writes and invalidates their declared keys on success.

    Mutations are never deduplicated or retried: side effects must not be
    replayed blindly.

    Usage:
        ```python
        mutations = MutationCoordinator(cache)

        campaign = await mutations.mutate(
            lambda: api.create_campaign(payload),
            invalidates=[("campaigns",)],
        )
        ```
    """

    def __init__(self, cache: QueryCache):
        """
        Initialize the coordinator.

        Args:
            cache: Store whose entries get invalidated
        """
        self._cache = cache

    async def mutate(
        self,
        writer: Callable[[], Awaitable[Any]],
        invalidates: Sequence[KeyLike] = (),
    ) -> Any:
        """
        Run a writer once and invalidate on success.

        Args:
            writer: Coroutine function performing the write
            invalidates: Keys or prefixes to mark stale

        Returns:
            The writer's result

        Raises:
            Exception: The writer's failure, unmodified. Nothing is invalidated.
        """
        targets = [normalize_key(t) for t in invalidates]
        result = await writer()
        self._apply(targets)
        return result

    async def run(self, descriptor: MutationDescriptor, variables: Any = None) -> Any:
        """
        Run a descriptor with one input.

        Args:
            descriptor: Writer and invalidation set
            variables: Passed to the writer (omitted when None)

        Returns:
            The writer's result
        """
        if variables is None:
            result = await descriptor.writer()
        else:
            result = await descriptor.writer(variables)

        targets = descriptor.resolve_targets(variables, result)
        logger.debug("Mutation %s succeeded", descriptor.name or "<anonymous>")
        self._apply(targets)
        return result

    def _apply(self, targets: list[QueryKey]) -> list[QueryKey]:
        invalidated: list[QueryKey] = []
        for target in targets:
            invalidated.extend(self._cache.invalidate(target))
        if targets:
            logger.debug(
                "Mutation invalidated %s (%d entries)",
                ", ".join(format_key(t) for t in targets),
                len(invalidated),
            )
        return invalidated


class Mutation:
    """
    View-facing handle for one kind of write.

    Holds the state of the latest invocation so a view can render a spinner
    or an inline error.

    Example:
        ```python
        create = client.use_mutation(api.create_campaign, invalidates=[("campaigns",)])

        await create.mutate(payload)
        if create.error:
            show_error(create.error)
        ```
    """

    def __init__(
        self,
        coordinator: MutationCoordinator,
        descriptor: MutationDescriptor,
        on_success: Optional[Callable[[Any, Any], None]] = None,
        on_error: Optional[Callable[[BaseException, Any], None]] = None,
    ):
        self._coordinator = coordinator
        self._descriptor = descriptor
        self._on_success = on_success
        self._on_error = on_error
        self._state = MutationState()
        self._listeners: dict[int, MutationCallback] = {}
        self._next_listener = 0

    @property
    def descriptor(self) -> MutationDescriptor:
        return self._descriptor

    @property
    def state(self) -> MutationState:
        return self._state

    @property
    def status(self) -> MutationStatus:
        return self._state.status

    @property
    def data(self) -> Any:
        return self._state.data

    @property
    def error(self) -> Optional[BaseException]:
        return self._state.error

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    async def mutate(self, variables: Any = None) -> Any:
        """
        Run the write, capturing any failure into ``error``.

        Returns:
            The result, or None if the write failed
        """
        try:
            return await self.mutate_async(variables)
        except Exception:
            return None

    async def mutate_async(self, variables: Any = None) -> Any:
        """
        Run the write and raise on failure.

        Raises:
            Exception: The writer's failure, after it is recorded in ``error``
        """
        self._set(MutationState(status=MutationStatus.LOADING, variables=variables))
        try:
            result = await self._coordinator.run(self._descriptor, variables)
        except Exception as exc:
            logger.warning("Mutation %s failed: %r", self._descriptor.name or "<anonymous>", exc)
            self._set(MutationState(status=MutationStatus.ERROR, error=exc, variables=variables))
            if self._on_error is not None:
                self._on_error(exc, variables)
            raise

        self._set(MutationState(status=MutationStatus.SUCCESS, data=result, variables=variables))
        if self._on_success is not None:
            self._on_success(result, variables)
        return result

    def reset(self) -> None:
        """Return to idle, dropping the last result and error."""
        self._set(MutationState())

    def add_listener(self, callback: MutationCallback) -> Callable[[], None]:
        """
        Register a state-change callback.

        Returns:
            Function that removes the listener
        """
        listener_id = self._next_listener
        self._next_listener += 1
        self._listeners[listener_id] = callback

        def remove() -> None:
            self._listeners.pop(listener_id, None)

        return remove

    def _set(self, state: MutationState) -> None:
        self._state = state
        for callback in list(self._listeners.values()):
            try:
                callback(state)
            except Exception:
                logger.exception("Mutation listener failed")

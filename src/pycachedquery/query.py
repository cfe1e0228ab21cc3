"""Per-key query state machine.

A :class:`Query` owns the cached value for one key, decides when it is
stale, folds concurrent requests into a single in-flight fetch and
broadcasts every state transition to its subscribers.

All state changes happen on the event loop thread.  The in-flight check and
the task creation in :meth:`Query.resolve` run without an ``await`` in
between, which is what guarantees a single fetch per query at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import TypeAdapter

from pycachedquery.exceptions import EmptyResultError
from pycachedquery.state import QueryState, QueryStatus
from pycachedquery.storage import delete_snapshot, read_snapshot, write_snapshot
from pycachedquery.subscription import Subscription

if TYPE_CHECKING:
    from pycachedquery.registry import QueryCache

_logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchFn = Callable[[], Awaitable[T]]
UpdateFn = Callable[[T | None], T]


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Callers may all have stopped awaiting; mark the outcome as retrieved.
    if not task.cancelled():
        task.exception()


class Query(Generic[T]):
    """Cached result of ``fetch_fn`` for one encoded key.

    Queries are normally obtained through
    :meth:`pycachedquery.registry.QueryCache.query` so that one instance
    exists per key.  Duration arguments left as ``None`` fall back to the
    owning cache's :class:`pycachedquery.config.CacheConfig`.
    """

    def __init__(
        self,
        *,
        key: str,
        fetch_fn: FetchFn[T],
        cache: QueryCache,
        data_type: Any = Any,
        store_query: bool | None = None,
        refetch_duration: timedelta | None = None,
        cache_duration: timedelta | None = None,
        ignore_refetch_duration: bool = False,
        ignore_cache_duration: bool = False,
        state: QueryState[T] | None = None,
    ) -> None:
        self._key = key
        self._fetch_fn = fetch_fn
        self._cache = cache
        self._data_type = data_type
        self._adapter: TypeAdapter[Any] = TypeAdapter(data_type)
        self._store_query = cache.config.store_query if store_query is None else store_query
        self._refetch_duration = refetch_duration
        self._cache_duration = cache_duration
        self.ignore_refetch_duration = ignore_refetch_duration
        self.ignore_cache_duration = ignore_cache_duration
        self._state: QueryState[T] = state if state is not None else QueryState(time_created=cache.clock())
        self._in_flight: asyncio.Task[QueryState[T]] | None = None
        self._invalidated = False
        self._subscribers: list[Subscription[T]] = []
        self.last_used: datetime = cache.clock()

    def __repr__(self) -> str:
        return f"Query(key={self._key!r}, status={self._state.status.value!r})"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def data_type(self) -> Any:
        return self._data_type

    @property
    def state(self) -> QueryState[T]:
        return self._state

    @property
    def store_query(self) -> bool:
        return self._store_query

    @property
    def refetch_duration(self) -> timedelta:
        if self._refetch_duration is not None:
            return self._refetch_duration
        return self._cache.config.refetch_duration

    @property
    def cache_duration(self) -> timedelta:
        if self._cache_duration is not None:
            return self._cache_duration
        return self._cache.config.cache_duration

    @property
    def is_fetching(self) -> bool:
        return self._in_flight is not None

    @property
    def is_stale(self) -> bool:
        if self._invalidated:
            return True
        if self.ignore_refetch_duration:
            return False
        return self._cache.clock() > self._state.time_created + self.refetch_duration

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def is_expired(self, now: datetime) -> bool:
        """Whether an idle query has outlived its ``cache_duration``."""
        if self.ignore_cache_duration or self._subscribers or self._in_flight is not None:
            return False
        return now - self.last_used > self.cache_duration

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def resolve(self, *, force_refetch: bool = False) -> QueryState[T]:
        """Return fresh state, fetching if the cached data is unusable.

        Concurrent calls share one fetch, and a forced call made while a
        fetch is running joins it instead of starting another.  Cancelling
        the caller does not cancel the fetch.
        """
        self._touch()
        state = self._state
        if (
            not force_refetch
            and not self.is_stale
            and state.status != QueryStatus.ERROR
            and state.data is not None
        ):
            self._emit()
            return state

        task = self._in_flight
        if task is None:
            task = asyncio.get_running_loop().create_task(self._fetch(), name=f"pycachedquery-fetch:{self._key}")
            task.add_done_callback(_consume_exception)
            self._in_flight = task
        else:
            _logger.debug("Joining in-flight fetch key=%s", self._key)
        return await asyncio.shield(task)

    async def refetch(self) -> QueryState[T]:
        """Fetch now regardless of staleness."""
        return await self.resolve(force_refetch=True)

    async def _fetch(self) -> QueryState[T]:
        self._set_state(self._state.copy_with(status=QueryStatus.LOADING, error=None))
        self._emit()
        try:
            if self._state.data is None and self._store_query:
                await self._load_from_storage()

            _logger.debug("Fetching key=%s", self._key)
            data = await self._fetch_fn()
            if data is None:
                raise EmptyResultError(f"Fetch for {self._key} returned no data", key=self._key)
            self._invalidated = False
            self._set_state(
                self._state.copy_with(
                    data=data,
                    status=QueryStatus.SUCCESS,
                    error=None,
                    time_created=self._now(),
                )
            )
            if self._store_query:
                await self._save_to_storage()
        except Exception as exc:
            _logger.warning("Fetch failed key=%s: %r", self._key, exc)
            self._set_state(self._state.copy_with(status=QueryStatus.ERROR, error=exc))
            if self._cache.config.should_rethrow:
                raise
        finally:
            self._in_flight = None
            self._touch()
            self._emit()
        return self._state

    async def _load_from_storage(self) -> None:
        storage = self._cache.storage
        if storage is None:
            return
        stored = await read_snapshot(storage, self._key, self._adapter)
        # The fetch may not overwrite data that arrived while reading.
        if stored is None or self._state.data is not None:
            return
        _logger.debug("Loaded stored snapshot key=%s", self._key)
        self._set_state(self._state.copy_with(data=stored.data))
        self._emit()

    async def _save_to_storage(self) -> None:
        storage = self._cache.storage
        if storage is None:
            return
        await write_snapshot(storage, self._key, self._state, self._adapter)

    # ------------------------------------------------------------------
    # Local mutation
    # ------------------------------------------------------------------

    def update(self, transform: UpdateFn[T]) -> QueryState[T]:
        """Replace ``data`` with ``transform(data)`` without fetching.

        Status and timestamp are left untouched.  The new snapshot is
        emitted synchronously and returned.
        """
        new_data = transform(self._state.data)
        self._set_state(self._state.copy_with(data=new_data))
        self._emit()
        return self._state

    def invalidate(self) -> None:
        """Mark the data stale; the next :meth:`resolve` will refetch."""
        self._invalidated = True

    async def delete(self, *, delete_storage: bool = False) -> None:
        """Remove this query from its cache and optionally its stored snapshot."""
        self._cache.remove(self._key, encoded=True)
        storage = self._cache.storage
        if delete_storage and storage is not None:
            await delete_snapshot(storage, self._key)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self) -> Subscription[T]:
        """Attach a subscriber; it first receives the current snapshot."""
        subscription = Subscription(self, self._state)
        self._subscribers.append(subscription)
        self._touch()
        if len(self._subscribers) == 1:
            self._cache.eviction.on_active(self)
        return subscription

    def detach(self, subscription: Subscription[T]) -> None:
        subscription.detach()

    def _detach(self, subscription: Subscription[T]) -> None:
        try:
            self._subscribers.remove(subscription)
        except ValueError:
            return
        self.last_used = self._cache.clock()
        if not self._subscribers:
            self._cache.eviction.on_idle(self)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return max(self._cache.clock(), self._state.time_created)

    def _set_state(self, state: QueryState[T]) -> None:
        self._state = state

    def _emit(self) -> None:
        state = self._state
        for subscription in list(self._subscribers):
            subscription._push(state)

    def _touch(self) -> None:
        self.last_used = self._cache.clock()
        if not self._subscribers:
            self._cache.eviction.on_idle(self)

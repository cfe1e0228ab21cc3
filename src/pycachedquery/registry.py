"""Query registry.

:class:`QueryCache` is the single source of truth mapping encoded keys to
:class:`pycachedquery.query.Query` instances.  Lookups and insertions go
through one lock so a key can never end up with two live queries, even when
the cache is shared between threads.

A process-wide default cache is available through :func:`get_cache`;
:func:`reset_cache` tears it down for test isolation.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any, TypeVar

from pycachedquery.config import CacheConfig
from pycachedquery.eviction import EvictionPolicy, TimerEviction
from pycachedquery.exceptions import QueryTypeMismatchError
from pycachedquery.keys import encode_key
from pycachedquery.query import FetchFn, Query, UpdateFn
from pycachedquery.state import QueryState, utcnow
from pycachedquery.storage import StorageBridge, delete_snapshot

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueryCache:
    """Registry of queries keyed by their canonical key encoding.

    Parameters
    ----------
    config : CacheConfig or None
        Cache-wide defaults.  ``CacheConfig()`` when omitted.
    storage : StorageBridge or None
        Optional persistence for queries created with ``store_query``.
    eviction : EvictionPolicy or None
        Decides when idle queries are removed.  Defaults to
        :class:`pycachedquery.eviction.TimerEviction`.
    clock : callable
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        storage: StorageBridge | None = None,
        eviction: EvictionPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or CacheConfig()
        self.storage = storage
        self.eviction: EvictionPolicy = eviction or TimerEviction()
        self.clock = clock
        self._queries: dict[str, Query[Any]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._queries)

    def __contains__(self, key: object) -> bool:
        return self.contains(key)

    # ------------------------------------------------------------------
    # Registry primitives
    # ------------------------------------------------------------------

    def get_or_create(self, key: Any, factory: Callable[[], Query[T]]) -> Query[T]:
        """Return the query for *key*, building it with *factory* on a miss.

        Two callers racing on an unseen key both receive the instance built
        by whichever acquired the lock first.
        """
        encoded = encode_key(key)
        with self._lock:
            existing = self._queries.get(encoded)
            if existing is not None:
                return existing
            query = factory()
            self._queries[encoded] = query
        _logger.debug("Created query key=%s", encoded)
        self.eviction.on_idle(query)
        return query

    def get(self, key: Any, *, encoded: bool = False) -> Query[Any] | None:
        return self._queries.get(key if encoded else encode_key(key))

    def contains(self, key: Any, *, encoded: bool = False) -> bool:
        return (key if encoded else encode_key(key)) in self._queries

    def keys(self) -> list[str]:
        return list(self._queries)

    def remove(self, key: Any, *, encoded: bool = False) -> Query[Any] | None:
        """Detach the query for *key*; a later lookup builds fresh state."""
        encoded_key = key if encoded else encode_key(key)
        with self._lock:
            query = self._queries.pop(encoded_key, None)
        if query is not None:
            self.eviction.on_removed(query)
            _logger.debug("Removed query key=%s", encoded_key)
        return query

    def evict(self, query: Query[Any]) -> bool:
        """Remove *query* if it is still registered, unobserved and not fetching."""
        with self._lock:
            if self._queries.get(query.key) is not query or query.subscriber_count or query.is_fetching:
                return False
            del self._queries[query.key]
        self.eviction.on_removed(query)
        _logger.debug("Evicted idle query key=%s", query.key)
        return True

    def reset(self) -> None:
        """Drop every query and cancel pending eviction work."""
        with self._lock:
            self._queries.clear()
        self.eviction.close()

    # ------------------------------------------------------------------
    # Query factory
    # ------------------------------------------------------------------

    def query(
        self,
        key: Any,
        fetch_fn: FetchFn[T],
        *,
        data_type: Any = Any,
        store_query: bool | None = None,
        refetch_duration: timedelta | None = None,
        cache_duration: timedelta | None = None,
        ignore_refetch_duration: bool = False,
        ignore_cache_duration: bool = False,
    ) -> Query[T]:
        """Get the query for *key*, creating it from the arguments on a miss.

        Arguments only take effect on creation: an existing query keeps the
        ``fetch_fn`` and options it was created with.
        """
        encoded = encode_key(key)

        def factory() -> Query[T]:
            return Query(
                key=encoded,
                fetch_fn=fetch_fn,
                cache=self,
                data_type=data_type,
                store_query=store_query,
                refetch_duration=refetch_duration,
                cache_duration=cache_duration,
                ignore_refetch_duration=ignore_refetch_duration,
                ignore_cache_duration=ignore_cache_duration,
            )

        query = self.get_or_create(key, factory)
        if data_type is not Any and query.data_type is not Any and query.data_type != data_type:
            raise QueryTypeMismatchError(
                f"Query {encoded} holds {query.data_type!r}, requested {data_type!r}",
                key=encoded,
            )
        return query

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def where(self, predicate: Callable[[Query[Any]], bool]) -> list[Query[Any]]:
        return [query for query in list(self._queries.values()) if predicate(query)]

    async def refetch_queries(self, keys: Iterable[Any]) -> list[QueryState[Any]]:
        """Force-refetch the registered queries among *keys* concurrently.

        Unknown keys are skipped.  With ``should_rethrow`` the first failure
        propagates once every fetch has finished.
        """
        queries = [query for query in (self.get(key) for key in keys) if query is not None]
        results = await asyncio.gather(*(query.refetch() for query in queries), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    def invalidate(
        self,
        key: Any = None,
        *,
        predicate: Callable[[Query[Any]], bool] | None = None,
    ) -> list[Query[Any]]:
        """Mark queries stale.

        With neither *key* nor *predicate* every query is invalidated.
        """
        if key is not None:
            query = self.get(key)
            targets = [query] if query is not None else []
        elif predicate is not None:
            targets = self.where(predicate)
        else:
            targets = list(self._queries.values())
        for query in targets:
            query.invalidate()
        return targets

    def update_query(self, key: Any, transform: UpdateFn[Any]) -> QueryState[Any] | None:
        """Apply a local update to the query for *key*, if it exists."""
        query = self.get(key)
        if query is None:
            return None
        return query.update(transform)

    async def delete_cache(self, key: Any = None, *, delete_storage: bool = False) -> None:
        """Remove one query, or all of them when *key* is omitted."""
        removed: list[Query[Any]] = []
        if key is not None:
            query = self.remove(key)
            if query is not None:
                removed.append(query)
        else:
            with self._lock:
                removed = list(self._queries.values())
                self._queries.clear()
            for query in removed:
                self.eviction.on_removed(query)
        if delete_storage and self.storage is not None:
            for query in removed:
                await delete_snapshot(self.storage, query.key)


_default_cache: QueryCache | None = None
_default_lock = threading.Lock()


def get_cache() -> QueryCache:
    """Return the process-wide cache, creating it on first use."""
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            _default_cache = QueryCache()
        return _default_cache


def configure(
    config: CacheConfig | None = None,
    *,
    storage: StorageBridge | None = None,
    eviction: EvictionPolicy | None = None,
) -> QueryCache:
    """Set defaults on the process-wide cache.

    Queries created before the call keep their explicit overrides but read
    the new config for everything else.
    """
    cache = get_cache()
    if config is not None:
        cache.config = config
    if storage is not None:
        cache.storage = storage
    if eviction is not None:
        cache.eviction.close()
        cache.eviction = eviction
        for query in cache.where(lambda q: not q.subscriber_count):
            eviction.on_idle(query)
    return cache


def reset_cache() -> None:
    """Tear down the process-wide cache; the next use starts empty."""
    global _default_cache
    with _default_lock:
        cache = _default_cache
        _default_cache = None
    if cache is not None:
        cache.reset()


def get_query(
    key: Any,
    fetch_fn: FetchFn[T],
    *,
    data_type: Any = Any,
    store_query: bool | None = None,
    refetch_duration: timedelta | None = None,
    cache_duration: timedelta | None = None,
    ignore_refetch_duration: bool = False,
    ignore_cache_duration: bool = False,
    cache: QueryCache | None = None,
) -> Query[T]:
    """Get or create a query on *cache* (the process-wide cache by default)."""
    target = cache if cache is not None else get_cache()
    return target.query(
        key,
        fetch_fn,
        data_type=data_type,
        store_query=store_query,
        refetch_duration=refetch_duration,
        cache_duration=cache_duration,
        ignore_refetch_duration=ignore_refetch_duration,
        ignore_cache_duration=ignore_cache_duration,
    )

"""Eviction policies for queries nobody is observing.

A query becomes *idle* when it has no subscribers.  The cache notifies its
policy on every idle/active transition; the policy decides when to call
:meth:`pycachedquery.registry.QueryCache.evict`, which only removes a query
that is still registered and still idle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pycachedquery.query import Query
    from pycachedquery.registry import QueryCache

_logger = logging.getLogger(__name__)


class EvictionPolicy(Protocol):
    def on_idle(self, query: Query[Any]) -> None: ...

    def on_active(self, query: Query[Any]) -> None: ...

    def on_removed(self, query: Query[Any]) -> None: ...

    def close(self) -> None: ...


class TimerEviction:
    """Remove a query ``cache_duration`` after it last became idle or was used."""

    def __init__(self) -> None:
        self._handles: dict[int, asyncio.TimerHandle] = {}

    def on_idle(self, query: Query[Any]) -> None:
        self._cancel(query)
        if query.ignore_cache_duration:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside a loop: nothing can fire, the query stays until removed or swept.
            _logger.debug("No running loop, eviction not scheduled key=%s", query.key)
            return
        delay = query.cache_duration.total_seconds()
        self._handles[id(query)] = loop.call_later(delay, self._expire, query)

    def on_active(self, query: Query[Any]) -> None:
        self._cancel(query)

    def on_removed(self, query: Query[Any]) -> None:
        self._cancel(query)

    def close(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    @property
    def pending(self) -> int:
        return len(self._handles)

    def _cancel(self, query: Query[Any]) -> None:
        handle = self._handles.pop(id(query), None)
        if handle is not None:
            handle.cancel()

    def _expire(self, query: Query[Any]) -> None:
        self._handles.pop(id(query), None)
        query.cache.evict(query)


class SweepEviction:
    """Evict idle queries only when :meth:`sweep` is called."""

    def on_idle(self, query: Query[Any]) -> None:
        return None

    def on_active(self, query: Query[Any]) -> None:
        return None

    def on_removed(self, query: Query[Any]) -> None:
        return None

    def close(self) -> None:
        return None

    def sweep(self, cache: QueryCache) -> list[str]:
        """Evict every expired query in *cache* and return the evicted keys."""
        now = cache.clock()
        evicted: list[str] = []
        for query in cache.where(lambda q: q.is_expired(now)):
            if cache.evict(query):
                evicted.append(query.key)
        if evicted:
            _logger.debug("Swept %s expired queries", len(evicted))
        return evicted

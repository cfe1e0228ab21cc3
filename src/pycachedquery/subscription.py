"""Per-subscriber snapshot streams."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pycachedquery.state import QueryState

if TYPE_CHECKING:
    from pycachedquery.query import Query

T = TypeVar("T")


class Subscription(Generic[T]):
    """Ordered stream of the snapshots emitted by one query.

    The snapshot current at subscribe time is delivered first, followed by
    every later emission.  Iteration ends once :meth:`detach` is called;
    snapshots queued before detaching are still delivered.

    Usage::

        async with query.subscribe() as subscription:
            async for state in subscription:
                ...
    """

    def __init__(self, query: Query[T], initial: QueryState[T]) -> None:
        self._query = query
        self._queue: asyncio.Queue[QueryState[T] | None] = asyncio.Queue()
        self._latest = initial
        self._detached = False
        self._queue.put_nowait(initial)

    @property
    def query(self) -> Query[T]:
        return self._query

    @property
    def latest(self) -> QueryState[T]:
        """Most recent snapshot pushed to this subscription."""
        return self._latest

    @property
    def detached(self) -> bool:
        return self._detached

    def _push(self, state: QueryState[T]) -> None:
        if self._detached:
            return
        self._latest = state
        self._queue.put_nowait(state)

    def detach(self) -> None:
        """Stop receiving snapshots.  Safe to call more than once."""
        if self._detached:
            return
        self._detached = True
        self._queue.put_nowait(None)
        self._query._detach(self)

    async def next(self) -> QueryState[T]:
        """Wait for the next snapshot.

        Raises
        ------
        StopAsyncIteration
            The subscription has been detached and drained.
        """
        if self._detached and self._queue.empty():
            raise StopAsyncIteration
        state = await self._queue.get()
        if state is None:
            raise StopAsyncIteration
        return state

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> QueryState[T]:
        return await self.next()

    async def __aenter__(self) -> Subscription[T]:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.detach()

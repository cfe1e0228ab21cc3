from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import pytest

from pycachedquery.eviction import SweepEviction
from pycachedquery.registry import QueryCache, reset_cache
from pycachedquery.storage import MemoryStorage


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def _isolated_default_cache() -> Iterator[None]:
    reset_cache()
    yield
    reset_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def cache(clock: FakeClock, storage: MemoryStorage) -> Iterator[QueryCache]:
    query_cache = QueryCache(storage=storage, eviction=SweepEviction(), clock=clock)
    yield query_cache
    query_cache.reset()

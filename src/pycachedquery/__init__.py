"""pycachedquery - Async data-fetching cache with deduplication and persistence."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pycachedquery")
except PackageNotFoundError:
    __version__ = "0+local"
from pycachedquery.config import CacheConfig
from pycachedquery.eviction import EvictionPolicy, SweepEviction, TimerEviction
from pycachedquery.exceptions import (
    CachedQueryConfigError,
    CachedQueryError,
    CachedQueryKeyError,
    EmptyResultError,
    FetchError,
    QueryTypeMismatchError,
    StorageError,
)
from pycachedquery.fetchers import json_fetcher
from pycachedquery.keys import encode_key
from pycachedquery.query import Query
from pycachedquery.registry import QueryCache, configure, get_cache, get_query, reset_cache
from pycachedquery.state import QueryState, QueryStatus
from pycachedquery.storage import MemoryStorage, StorageBridge, StoredQuery
from pycachedquery.subscription import Subscription

__all__ = [
    "__version__",
    "CacheConfig",
    "CachedQueryConfigError",
    "CachedQueryError",
    "CachedQueryKeyError",
    "EmptyResultError",
    "EvictionPolicy",
    "FetchError",
    "MemoryStorage",
    "Query",
    "QueryCache",
    "QueryState",
    "QueryStatus",
    "QueryTypeMismatchError",
    "StorageBridge",
    "StorageError",
    "StoredQuery",
    "Subscription",
    "SweepEviction",
    "TimerEviction",
    "configure",
    "encode_key",
    "get_cache",
    "get_query",
    "json_fetcher",
    "reset_cache",
]

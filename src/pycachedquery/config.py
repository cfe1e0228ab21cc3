"""Cache configuration for pycachedquery."""

from __future__ import annotations

import dataclasses
import os
from datetime import timedelta
from typing import Any

from pycachedquery.exceptions import CachedQueryConfigError

#: Default age after which cached data is refetched on the next access.
DEFAULT_REFETCH_DURATION = timedelta(seconds=4)
#: Default time an unobserved query stays in the cache before eviction.
DEFAULT_CACHE_DURATION = timedelta(minutes=5)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_seconds(name: str, value: str) -> timedelta:
    try:
        return timedelta(seconds=float(value))
    except ValueError as exc:
        raise CachedQueryConfigError(f"{name} must be a number of seconds, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class CacheConfig:
    """Resolved cache-wide defaults.

    Every query reads these values unless it was created with its own
    override.

    Parameters
    ----------
    refetch_duration : timedelta
        Minimum age before cached data is considered stale and refetched
        on the next access.  Defaults to 4 seconds.
    cache_duration : timedelta
        How long a query without subscribers may stay in the cache before
        the eviction policy removes it.  Defaults to 5 minutes.
    should_rethrow : bool
        Re-raise fetch failures to callers awaiting ``resolve``.  When
        ``False`` failures are only visible as error snapshots.
    store_query : bool
        Default for whether new queries persist through the storage bridge.
    """

    refetch_duration: timedelta = DEFAULT_REFETCH_DURATION
    cache_duration: timedelta = DEFAULT_CACHE_DURATION
    should_rethrow: bool = False
    store_query: bool = True

    def __post_init__(self) -> None:
        for name in ("refetch_duration", "cache_duration"):
            value = getattr(self, name)
            if not isinstance(value, timedelta):
                raise CachedQueryConfigError(f"{name} must be a timedelta, got {type(value).__name__}")
            if value < timedelta(0):
                raise CachedQueryConfigError(f"{name} must not be negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> CacheConfig:
        """Create configuration from environment variables.

        Reads ``CACHED_QUERY_REFETCH_SECONDS``, ``CACHED_QUERY_CACHE_SECONDS``,
        ``CACHED_QUERY_SHOULD_RETHROW`` and ``CACHED_QUERY_STORE_QUERY``.
        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CacheConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        refetch_env = env.get("CACHED_QUERY_REFETCH_SECONDS")
        if refetch_env is not None and "refetch_duration" not in overrides:
            config_kwargs["refetch_duration"] = _env_seconds("CACHED_QUERY_REFETCH_SECONDS", refetch_env)

        cache_env = env.get("CACHED_QUERY_CACHE_SECONDS")
        if cache_env is not None and "cache_duration" not in overrides:
            config_kwargs["cache_duration"] = _env_seconds("CACHED_QUERY_CACHE_SECONDS", cache_env)

        if "should_rethrow" not in overrides:
            config_kwargs["should_rethrow"] = _env_bool(env.get("CACHED_QUERY_SHOULD_RETHROW"), False)

        if "store_query" not in overrides:
            config_kwargs["store_query"] = _env_bool(env.get("CACHED_QUERY_STORE_QUERY"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

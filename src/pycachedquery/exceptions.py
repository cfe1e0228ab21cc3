"""Custom exception hierarchy for pycachedquery."""

from __future__ import annotations


class CachedQueryError(Exception):
    """Base exception for all pycachedquery errors."""


class CachedQueryConfigError(CachedQueryError):
    """Invalid or missing configuration."""


class CachedQueryKeyError(CachedQueryError, TypeError):
    """A query key could not be encoded to its canonical string form."""


class QueryTypeMismatchError(CachedQueryError, TypeError):
    """A cached key was requested with a different declared data type.

    Raised by :meth:`pycachedquery.registry.QueryCache.query` when an
    existing query for the key was created for another type.  Two call sites
    sharing a key must agree on what the key produces.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class StorageError(CachedQueryError):
    """A storage backend read, write or delete failed.

    Storage failures never escape a query; backends may raise this (or any
    other exception) and the query absorbs and logs it.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class FetchError(CachedQueryError):
    """HTTP-level failure raised by the bundled fetch helpers."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class EmptyResultError(CachedQueryError):
    """A fetch function completed without producing data."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)

"""Immutable query state snapshots."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(UTC)


class QueryStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class QueryState(BaseModel, Generic[T]):
    """Point-in-time result of a query.

    ``time_created`` is when ``data`` was last successfully produced, or
    when the query was created if it has never fetched.  ``error`` is set
    exactly when ``status`` is :attr:`QueryStatus.ERROR`, and a successful
    snapshot always carries ``data``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    data: T | None = None
    status: QueryStatus = QueryStatus.IDLE
    error: BaseException | None = None
    time_created: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> QueryState[T]:
        if self.status == QueryStatus.ERROR and self.error is None:
            raise ValueError("error status requires an error value")
        if self.status != QueryStatus.ERROR and self.error is not None:
            raise ValueError("error value is only allowed with error status")
        if self.status == QueryStatus.SUCCESS and self.data is None:
            raise ValueError("success status requires data")
        return self

    def copy_with(self, **changes: Any) -> QueryState[T]:
        """Return a validated copy with *changes* applied."""
        values = dict(self)
        values.update(changes)
        return type(self)(**values)

    @property
    def has_data(self) -> bool:
        return self.data is not None

    @property
    def is_loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status == QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == QueryStatus.ERROR

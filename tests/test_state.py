from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from pycachedquery.state import QueryState, QueryStatus


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def test_defaults_to_idle_without_data() -> None:
    state = QueryState(time_created=_dt())

    assert state.status == QueryStatus.IDLE
    assert not state.has_data
    assert state.error is None


def test_copy_with_leaves_original_untouched() -> None:
    state = QueryState(data=[1], time_created=_dt())

    loading = state.copy_with(status=QueryStatus.LOADING)

    assert loading.is_loading
    assert loading.data == [1]
    assert state.status == QueryStatus.IDLE


def test_snapshots_are_frozen() -> None:
    state = QueryState(data=1, time_created=_dt())

    with pytest.raises(ValidationError):
        state.data = 2  # type: ignore[misc]


def test_error_status_requires_error() -> None:
    with pytest.raises(ValidationError):
        QueryState(status=QueryStatus.ERROR, time_created=_dt())


def test_error_only_allowed_with_error_status() -> None:
    state = QueryState(data=1, status=QueryStatus.SUCCESS, time_created=_dt())

    with pytest.raises(ValidationError):
        state.copy_with(error=RuntimeError("x"))

    failed = state.copy_with(status=QueryStatus.ERROR, error=RuntimeError("x"))
    assert failed.is_error
    assert failed.data == 1


def test_success_status_requires_data() -> None:
    with pytest.raises(ValidationError):
        QueryState(status=QueryStatus.SUCCESS, time_created=_dt())

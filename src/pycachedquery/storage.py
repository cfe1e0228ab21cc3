"""Storage bridge used to persist query snapshots.

The cache never owns a durable store.  Anything implementing
:class:`StorageBridge` can be plugged into a
:class:`pycachedquery.registry.QueryCache`; this module also provides the
serialized snapshot format and the helpers queries use to read and write it.

Storage is best effort: every failure is logged and absorbed here so it can
never turn into a fetch failure.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from pycachedquery.state import QueryState

_logger = logging.getLogger(__name__)


class StorageBridge(Protocol):
    """Structural interface for a key-value snapshot store.

    Implementations signal failure by raising.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class StoredQuery(BaseModel):
    """Serialized form of a successful snapshot."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    data: Any
    time_created: datetime


class MemoryStorage:
    """Dict-backed :class:`StorageBridge`."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._items.get(key)

    async def set(self, key: str, value: str) -> None:
        self._items[key] = value

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        self._items.clear()


async def read_snapshot(storage: StorageBridge, key: str, adapter: TypeAdapter[Any]) -> StoredQuery | None:
    """Load and type-check the stored snapshot for *key*.

    Returns ``None`` when nothing is stored or the stored value cannot be
    read, decoded or validated against *adapter*.
    """
    try:
        raw = await storage.get(key)
    except Exception:
        _logger.warning("Storage read failed key=%s", key, exc_info=True)
        return None
    if raw is None:
        return None

    try:
        stored = StoredQuery.model_validate_json(raw)
        data = adapter.validate_python(stored.data)
    except ValidationError as exc:
        _logger.warning("Discarding stored snapshot key=%s: %s", key, exc)
        return None
    if data is None:
        return None
    return stored.model_copy(update={"data": data})


async def write_snapshot(
    storage: StorageBridge,
    key: str,
    state: QueryState[Any],
    adapter: TypeAdapter[Any],
) -> bool:
    """Persist the data and timestamp of *state*; return whether it was stored."""
    try:
        payload = StoredQuery(
            data=adapter.dump_python(state.data, mode="json"),
            time_created=state.time_created,
        ).model_dump_json()
        await storage.set(key, payload)
    except Exception:
        _logger.warning("Storage write failed key=%s", key, exc_info=True)
        return False
    _logger.debug("Stored snapshot key=%s", key)
    return True


async def delete_snapshot(storage: StorageBridge, key: str) -> bool:
    """Remove the stored snapshot for *key*; return whether it succeeded."""
    try:
        await storage.delete(key)
    except Exception:
        _logger.warning("Storage delete failed key=%s", key, exc_info=True)
        return False
    return True

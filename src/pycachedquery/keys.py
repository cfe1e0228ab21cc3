"""Canonical key encoding.

A query key may be any JSON-like value.  The encoded string is the cache
identity, so the encoding must not depend on dict insertion order.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from pydantic import BaseModel

from pycachedquery.exceptions import CachedQueryKeyError


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=lambda item: json.dumps(item, sort_keys=True, default=_default))
    raise TypeError(f"Object of type {type(value).__name__} is not a valid query key")


def encode_key(key: Any) -> str:
    """Return the canonical string form of *key*.

    Strings are JSON-encoded too, so ``"1"`` and ``1`` are different keys.
    """
    try:
        return json.dumps(key, sort_keys=True, separators=(",", ":"), default=_default)
    except (TypeError, ValueError) as exc:
        raise CachedQueryKeyError(f"Cannot encode query key {key!r}: {exc}") from exc

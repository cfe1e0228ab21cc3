"""Ready-made fetch functions for HTTP JSON endpoints."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import aiohttp
from pydantic import BaseModel

from pycachedquery.exceptions import FetchError

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def json_fetcher(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: Mapping[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
    model: type[M] | None = None,
) -> Callable[[], Awaitable[Any]]:
    """Build a zero-argument fetch function that GETs *url* and decodes JSON.

    When *model* is given the decoded body is validated into it.  HTTP
    errors, connection failures and undecodable bodies raise
    :class:`pycachedquery.exceptions.FetchError`.
    """

    async def fetch() -> Any:
        _logger.debug("GET %s", url)
        try:
            async with session.get(url, params=params, headers=headers) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise FetchError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except FetchError:
            raise
        except aiohttp.ClientError as exc:
            raise FetchError(f"Request to {url} failed: {exc}", url=url) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FetchError(f"Invalid JSON from {url}: {text[:200]}", url=url) from exc

        if model is not None:
            return model.model_validate(body)
        return body

    return fetch

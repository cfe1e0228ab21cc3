from __future__ import annotations

import dataclasses

import pytest
from pydantic import BaseModel

from pycachedquery.exceptions import CachedQueryKeyError
from pycachedquery.keys import encode_key


class _PostFilter(BaseModel):
    page: int
    tags: list[str]


@dataclasses.dataclass
class _Page:
    number: int
    size: int


def test_dict_keys_are_order_independent() -> None:
    assert encode_key({"a": 1, "b": [1, 2]}) == encode_key({"b": [1, 2], "a": 1})


def test_strings_and_numbers_differ() -> None:
    assert encode_key("1") != encode_key(1)
    assert encode_key("posts") == '"posts"'


def test_tuples_encode_like_lists() -> None:
    assert encode_key(("posts", 1)) == encode_key(["posts", 1]) == '["posts",1]'


def test_models_and_dataclasses() -> None:
    assert encode_key(_PostFilter(page=2, tags=["x"])) == encode_key({"tags": ["x"], "page": 2})
    assert encode_key(_Page(number=1, size=20)) == '{"number":1,"size":20}'


def test_sets_are_sorted() -> None:
    assert encode_key({"c", "a", "b"}) == '["a","b","c"]'


def test_unserializable_key_raises() -> None:
    with pytest.raises(CachedQueryKeyError):
        encode_key(object())

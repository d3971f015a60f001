from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import numpy as np
import pytest

from zarrpeek.core.common import (
    ceildiv,
    concurrent_map,
    parse_name,
    parse_named_configuration,
    parse_order,
    parse_shapelike,
    product,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any


@pytest.mark.parametrize("data", [(0, 0, 0, 0), (1, 3, 4, 5, 6), (2, 4), ()])
def test_product(data: tuple[int, ...]) -> None:
    assert product(data) == np.prod(data)


@pytest.mark.parametrize(("a", "b", "expected"), [(0, 3, 0), (1, 3, 1), (3, 3, 1), (1024, 512, 2), (1025, 512, 3)])
def test_ceildiv(a: int, b: int, expected: int) -> None:
    assert ceildiv(a, b) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [None, 1, 3])
async def test_concurrent_map_preserves_order(limit: int | None) -> None:
    async def double(value: int, delay: float) -> int:
        await asyncio.sleep(delay)
        return value * 2

    items = [(i, 0.001 * (5 - i)) for i in range(5)]
    assert await concurrent_map(items, double, limit) == [0, 2, 4, 6, 8]


@pytest.mark.asyncio
async def test_concurrent_map_limit() -> None:
    in_flight = 0
    peak = 0

    async def track(_: int) -> None:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.001)
        in_flight -= 1

    await concurrent_map([(i,) for i in range(10)], track, 2)
    assert peak == 2


@pytest.mark.asyncio
async def test_concurrent_map_cancels_on_error() -> None:
    finished: list[int] = []

    async def work(value: int) -> None:
        if value == 0:
            raise OSError("boom")
        await asyncio.sleep(1)
        finished.append(value)

    with pytest.raises(OSError, match="boom"):
        await concurrent_map([(i,) for i in range(4)], work, 4)
    await asyncio.sleep(0)
    assert finished == []


@pytest.mark.parametrize("data", [("foo", "bar"), (10, 11)])
def test_parse_name_invalid(data: tuple[Any, Any]) -> None:
    observed, expected = data
    if isinstance(observed, str):
        with pytest.raises(ValueError, match=f"Expected '{expected}'. Got {observed} instead."):
            parse_name(observed, expected)
    else:
        with pytest.raises(
            TypeError, match=f"Expected a string, got an instance of {type(observed)}."
        ):
            parse_name(observed, expected)


@pytest.mark.parametrize("data", [("foo", "foo"), ("10", "10")])
def test_parse_name_valid(data: tuple[Any, Any]) -> None:
    observed, expected = data
    assert parse_name(observed, expected) == observed


def test_parse_named_configuration() -> None:
    assert parse_named_configuration({"name": "zstd", "configuration": {"level": 1}}) == (
        "zstd",
        {"level": 1},
    )
    assert parse_named_configuration({"name": "bytes"}, require_configuration=False) == (
        "bytes",
        None,
    )
    with pytest.raises(ValueError, match="does not have a 'configuration' key"):
        parse_named_configuration({"name": "bytes"})
    with pytest.raises(ValueError, match="does not have a 'name' key"):
        parse_named_configuration({"configuration": {}})
    with pytest.raises(TypeError, match="Expected dict"):
        parse_named_configuration(["zstd"])


@pytest.mark.parametrize("data", [0, 1, "hello", "f"])
def test_parse_order_invalid(data: Any) -> None:
    with pytest.raises(ValueError, match="Expected one of"):
        parse_order(data)


@pytest.mark.parametrize("data", ["C", "F"])
def test_parse_order_valid(data: str) -> None:
    assert parse_order(data) == data


@pytest.mark.parametrize("data", [lambda v: v, slice(None)])
def test_parse_shapelike_invalid_single_type(data: Any) -> None:
    """
    Test that we get the expected error message when passing in a value that is not an integer
    or an iterable of integers.
    """
    with pytest.raises(TypeError, match="Expected an integer or an iterable of integers."):
        parse_shapelike(data)


@pytest.mark.parametrize("data", ["shape", ("0", 1, 2, 3), {"0": "0"}, ((1, 2), (2, 2)), (4.0, 2), (True,)])
def test_parse_shapelike_invalid_iterable_types(data: Any) -> None:
    """
    Test that we get the expected error message when passing in an iterable containing
    non-integer elements
    """
    with pytest.raises(TypeError, match="Expected an iterable of integers"):
        parse_shapelike(data)


@pytest.mark.parametrize("data", [-1, 0, (1, 2, 3, -1), (4, 0)])
def test_parse_shapelike_invalid_values(data: Any) -> None:
    # chunk and array extents must be positive
    with pytest.raises(ValueError, match="Expected all values to be positive."):
        parse_shapelike(data)


@pytest.mark.parametrize("data", [range(1, 10), [1, 2, 3], (3, 4, 5), (), 7])
def test_parse_shapelike_valid(data: Iterable[int] | int) -> None:
    expected = (data,) if isinstance(data, int) else tuple(data)
    assert parse_shapelike(data) == expected

from __future__ import annotations

import asyncio
import functools
import math
import operator
from collections.abc import Iterable, Mapping, Sequence
from itertools import starmap
from typing import TYPE_CHECKING, Any, Literal, TypeVar, cast

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


ZARR_JSON = "zarr.json"
ZARRAY_JSON = ".zarray"
ZGROUP_JSON = ".zgroup"
ZATTRS_JSON = ".zattrs"

BytesLike = bytes | bytearray | memoryview
ChunkCoords = tuple[int, ...]
ZarrFormat = Literal[2, 3]
JSON = str | int | float | Mapping[str, "JSON"] | Sequence["JSON"] | None
MemoryOrder = Literal["C", "F"]


def product(tup: tuple[int, ...]) -> int:
    return functools.reduce(operator.mul, tup, 1)


def ceildiv(a: float, b: float) -> int:
    if a == 0:
        return 0
    return math.ceil(a / b)


T = TypeVar("T", bound=tuple[Any, ...])
V = TypeVar("V")


async def concurrent_map(
    items: Iterable[T],
    func: Callable[..., Awaitable[V]],
    limit: int | None = None,
) -> list[V]:
    """
    Execute an async function concurrently over multiple items with concurrency limiting.

    The first exception raised by any call cancels the calls still pending and is
    propagated to the caller.

    Parameters
    ----------
    items : Iterable[T]
        Items to process, where each item is a tuple of arguments to pass to func.
    func : Callable[..., Awaitable[V]]
        Async function to execute for each item.
    limit : int | None, optional
        Maximum number of calls in flight at once. If None, no concurrency limiting is applied.

    Returns
    -------
    list[V]
        Results from executing func on all items, in the order of ``items``.
    """
    if limit is None:
        tasks = [asyncio.ensure_future(coro) for coro in starmap(func, items)]
    else:
        sem = asyncio.Semaphore(limit)

        async def run(item: tuple[Any]) -> V:
            async with sem:
                return await func(*item)

        tasks = [asyncio.ensure_future(run(item)) for item in items]

    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


def parse_name(data: JSON, expected: str | None = None) -> str:
    if isinstance(data, str):
        if expected is None or data == expected:
            return data
        raise ValueError(f"Expected '{expected}'. Got {data} instead.")
    else:
        raise TypeError(f"Expected a string, got an instance of {type(data)}.")


def parse_configuration(data: JSON) -> dict[str, JSON]:
    if not isinstance(data, dict):
        raise TypeError(f"Expected dict, got {type(data)}")
    return data


def parse_named_configuration(
    data: JSON,
    expected_name: str | None = None,
    *,
    require_configuration: bool = True,
) -> tuple[str, dict[str, JSON] | None]:
    if not isinstance(data, dict):
        raise TypeError(f"Expected dict, got {type(data)}")
    if "name" not in data:
        raise ValueError(f"Named configuration does not have a 'name' key. Got {data}.")
    name_parsed = parse_name(data["name"], expected_name)
    if "configuration" in data:
        configuration_parsed = parse_configuration(data["configuration"])
    elif require_configuration:
        raise ValueError(f"Named configuration does not have a 'configuration' key. Got {data}.")
    else:
        configuration_parsed = None
    return name_parsed, configuration_parsed


def parse_shapelike(data: Any) -> tuple[int, ...]:
    """Parse a shape or chunk shape. Every entry must be a positive integer."""
    if isinstance(data, int) and not isinstance(data, bool):
        data = (data,)
    try:
        data_tuple = tuple(data)
    except TypeError as e:
        msg = f"Expected an integer or an iterable of integers. Got {data} instead."
        raise TypeError(msg) from e

    if not all(isinstance(v, int) and not isinstance(v, bool) for v in data_tuple):
        msg = f"Expected an iterable of integers. Got {data} instead."
        raise TypeError(msg)
    if not all(v > 0 for v in data_tuple):
        msg = f"Expected all values to be positive. Got {data} instead."
        raise ValueError(msg)
    return data_tuple


def parse_order(data: Any) -> MemoryOrder:
    if data in ("C", "F"):
        return cast("MemoryOrder", data)
    raise ValueError(f"Expected one of ('C', 'F'), got {data} instead.")

"""
Slice planning.

Turns user axis selectors and a resolution choice into a concrete :class:`ResolvedSlice`:
one resolution level, one pinned index per non-spatial axis, and a half-open range on
each of the two spatial axes (the last two axes, row then column).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from zarrpeek.errors import SelectorError

if TYPE_CHECKING:
    from zarrpeek.core.indexing import Window
    from zarrpeek.core.metadata import ArrayDescriptor, MultiscaleDescriptor

logger = logging.getLogger(__name__)


class _All:
    """Sentinel selecting a whole spatial axis."""

    def __repr__(self) -> str:
        return "ALL"


ALL: Final = _All()

Range = tuple[int | None, int | None]
AxisSelector = int | Range | _All
Selectors = Mapping[str | int, AxisSelector]
ResolutionChoice = str | int | None


@dataclass(frozen=True)
class ResolvedSlice:
    """
    A fully resolved 2-D slice of one resolution level.

    Attributes
    ----------
    level
        Index of the resolution level.
    path
        Path of the resolution level.
    array
        Descriptor of the level's array.
    selectors
        One entry per axis: an index for pinned axes, a ``(start, stop)`` range for the
        two spatial axes.
    spatial_axes
        Names of the spatial axes in (row, column) order.
    """

    level: int
    path: str
    array: ArrayDescriptor
    selectors: tuple[int | tuple[int, int], ...]
    spatial_axes: tuple[str, str]

    @property
    def window(self) -> Window:
        return tuple(s if isinstance(s, int) else slice(*s) for s in self.selectors)

    @property
    def shape(self) -> tuple[int, int]:
        rows, cols = (s[1] - s[0] for s in self.selectors if not isinstance(s, int))
        return rows, cols

    def __str__(self) -> str:
        parts = []
        for name, sel in zip(self.array.axis_names, self.selectors, strict=True):
            parts.append(f"{name}={sel}" if isinstance(sel, int) else f"{name}={sel[0]}:{sel[1]}")
        return ",".join(parts)


def parse_resolution(data: ResolutionChoice) -> ResolutionChoice:
    """
    Normalize a resolution choice.

    Strings are level paths, with or without a leading ``/``; integers are level indices.

    Examples
    --------
    >>> parse_resolution("/2")
    '2'
    >>> parse_resolution(1)
    1
    """
    if data is None or isinstance(data, int) and not isinstance(data, bool):
        return data
    if isinstance(data, str):
        return data.strip().strip("/")
    raise SelectorError(f"Invalid resolution {data!r}.", "resolution")


def _parse_int(text: str, axis: str | int) -> int:
    try:
        return int(text)
    except ValueError as e:
        raise SelectorError(f"Invalid index {text!r} for axis {axis!r}.", axis) from e


def _parse_value(text: str, axis: str | int) -> AxisSelector:
    text = text.strip()
    if text.lower() in ("all", ":"):
        return ALL
    if ":" in text:
        start, _, stop = text.partition(":")
        return (
            _parse_int(start, axis) if start.strip() else None,
            _parse_int(stop, axis) if stop.strip() else None,
        )
    return _parse_int(text, axis)


def parse_selectors(text: str | None) -> dict[str | int, AxisSelector]:
    """
    Parse the string form of axis selectors.

    Entries are separated by commas. ``name=index`` pins an axis, ``name=start:stop``
    selects a half-open range (either end may be omitted) and ``name=:`` or ``name=all``
    a whole axis. An axis may be named by its position. Bare integers pin the
    non-spatial axes in order.

    Examples
    --------
    >>> parse_selectors("t=0,y=100:300,x=all")
    {'t': 0, 'y': (100, 300), 'x': ALL}
    >>> parse_selectors("5,3")
    {0: 5, 1: 3}
    """
    selectors: dict[str | int, AxisSelector] = {}
    if text is None:
        return selectors
    position = 0
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        key: str | int
        if "=" in token:
            name, _, value = token.partition("=")
            name = name.strip()
            if not name:
                raise SelectorError(f"Missing axis name in selector {token!r}.")
            key = int(name) if name.isdigit() else name
        else:
            key, value = position, token
            position += 1
        if key in selectors:
            raise SelectorError(f"Axis {key!r} is selected more than once.", key)
        selectors[key] = _parse_value(value, key)
    return selectors


def _resolve_level(multiscale: MultiscaleDescriptor, resolution: ResolutionChoice) -> int:
    choice = parse_resolution(resolution)
    if choice is None:
        return len(multiscale.levels) - 1
    available = ", ".join(f"/{p}" for p in multiscale.paths)
    if isinstance(choice, int):
        if not 0 <= choice < len(multiscale.levels):
            raise SelectorError(
                f"Resolution level {choice} does not exist; available levels: {available}.",
                "resolution",
            )
        return choice
    try:
        index = multiscale.find_level(choice)
    except ValueError:
        index = None
    if index is None:
        raise SelectorError(
            f"Resolution '/{choice}' does not exist; available levels: {available}.",
            "resolution",
        )
    return index


def _axis_index(key: str | int, axis_names: tuple[str, ...]) -> int:
    if isinstance(key, int):
        if not 0 <= key < len(axis_names):
            raise SelectorError(
                f"Axis {key} does not exist; the array has {len(axis_names)} axes {axis_names}.",
                key,
            )
        return key
    if key not in axis_names:
        raise SelectorError(f"Axis {key!r} does not exist; available axes: {axis_names}.", key)
    return axis_names.index(key)


def _resolve_range(sel: Range, name: str, extent: int) -> tuple[int, int]:
    start = 0 if sel[0] is None else sel[0]
    stop = extent if sel[1] is None else sel[1]
    if start < 0 or stop > extent:
        raise SelectorError(
            f"Range {start}:{stop} is out of bounds for axis {name!r} with extent {extent}.", name
        )
    if stop <= start:
        raise SelectorError(f"Range {start}:{stop} for axis {name!r} is empty or inverted.", name)
    return start, stop


def plan(
    multiscale: MultiscaleDescriptor,
    selectors: Selectors | None = None,
    resolution: ResolutionChoice = None,
    *,
    crop_size: int | None = None,
) -> ResolvedSlice:
    """
    Resolve axis selectors against one resolution level.

    Parameters
    ----------
    multiscale : MultiscaleDescriptor
        The resolved image.
    selectors : Mapping, optional
        Selectors keyed by axis name or position: an index, a ``(start, stop)`` range
        (``None`` for an open end) or :data:`ALL`.
    resolution : str or int, optional
        Level path (``"/2"`` or ``"2"``) or level index. Defaults to the last, lowest
        resolution level.
    crop_size : int, optional
        Limit spatial axes without an explicit range to ``[0, crop_size)``.

    Raises
    ------
    SelectorError
        If the selection is invalid for the chosen level. The error names the axis.
    """
    if crop_size is not None and crop_size <= 0:
        raise SelectorError(f"Crop size must be positive, got {crop_size}.", "crop_size")
    level = _resolve_level(multiscale, resolution)
    array = multiscale.levels[level].array
    names = array.axis_names
    if array.ndim < 2:
        raise SelectorError(
            f"Cannot render a 2-D slice of an array with {array.ndim} dimension(s)."
        )
    spatial = (array.ndim - 2, array.ndim - 1)

    by_index: dict[int, AxisSelector] = {}
    for key, sel in (selectors or {}).items():
        index = _axis_index(key, names)
        if index in by_index:
            raise SelectorError(f"Axis {names[index]!r} is selected more than once.", names[index])
        by_index[index] = sel

    logger.info(
        "Using resolution level /%s with shape %s", multiscale.levels[level].path, array.shape
    )
    resolved: list[int | tuple[int, int]] = []
    for index, (name, extent) in enumerate(zip(names, array.shape, strict=True)):
        sel = by_index.get(index)
        if sel is None:
            if index in spatial:
                stop = extent if crop_size is None else min(extent, crop_size)
                resolved.append((0, stop))
            else:
                center = (extent - 1) // 2
                logger.info("Slicing dimension %d (%s) at center index %d", index, name, center)
                resolved.append(center)
        elif isinstance(sel, _All | tuple):
            if index not in spatial:
                raise SelectorError(
                    f"Axis {name!r} is not spatial and needs a single index, got {sel!r}.", name
                )
            resolved.append((0, extent) if isinstance(sel, _All) else _resolve_range(sel, name, extent))
        elif isinstance(sel, int) and not isinstance(sel, bool):
            if not 0 <= sel < extent:
                raise SelectorError(
                    f"Index {sel} is out of bounds for axis {name!r} with extent {extent}.", name
                )
            logger.info("Slicing dimension %d (%s) at index %d", index, name, sel)
            resolved.append(sel)
        else:
            raise SelectorError(f"Invalid selector {sel!r} for axis {name!r}.", name)

    planes = [i for i, s in enumerate(resolved) if isinstance(s, tuple)]
    if len(planes) != 2:
        raise SelectorError(
            f"Exactly two axes must span the rendered plane, got {len(planes)}: "
            f"{[names[i] for i in planes]}.",
            names[spatial[0]] if spatial[0] not in planes else names[spatial[1]],
        )
    result = ResolvedSlice(
        level=level,
        path=multiscale.levels[level].path,
        array=array,
        selectors=tuple(resolved),
        spatial_axes=(names[spatial[0]], names[spatial[1]]),
    )
    logger.info("Resolved slice %s -> %dx%d plane", result, *result.shape)
    return result


def plan_channels(
    multiscale: MultiscaleDescriptor,
    selectors: Selectors | None = None,
    resolution: ResolutionChoice = None,
    channels: Sequence[int] | None = None,
    *,
    crop_size: int | None = None,
) -> list[ResolvedSlice]:
    """
    Resolve one slice per requested channel.

    Without ``channels`` this is a single :func:`plan`. Otherwise the channel axis (the axis
    with OME type ``channel``, or the axis named ``c``) is pinned to each channel in turn.

    Raises
    ------
    SelectorError
        If there is no channel axis, it is also selected explicitly, or a channel index
        is out of range.
    """
    if channels is None:
        return [plan(multiscale, selectors, resolution, crop_size=crop_size)]
    if len(channels) == 0:
        raise SelectorError("At least one channel must be requested.", "c")
    axis = multiscale.channel_axis
    if axis is None:
        raise SelectorError(
            f"Channels {list(channels)} requested but the image has no channel axis "
            f"(axes: {multiscale.axis_names}).",
            "c",
        )
    name = multiscale.axis_names[axis]
    selectors = dict(selectors or {})
    if name in selectors or axis in selectors:
        raise SelectorError(
            f"Channel axis {name!r} is selected both as an axis and as channels.", name
        )
    return [
        plan(multiscale, {**selectors, name: channel}, resolution, crop_size=crop_size)
        for channel in channels
    ]

from __future__ import annotations

import logging
from typing import Any

import pytest

from zarrpeek.core.metadata import ArrayDescriptor, Level, MultiscaleDescriptor
from zarrpeek.core.planner import (
    ALL,
    parse_resolution,
    parse_selectors,
    plan,
    plan_channels,
)
from zarrpeek.errors import SelectorError


def _multiscale(
    shapes: list[tuple[int, ...]],
    axis_types: tuple[str | None, ...] = ("time", "channel", "space", "space", "space"),
) -> MultiscaleDescriptor:
    levels = []
    for i, shape in enumerate(shapes):
        meta: dict[str, Any] = {
            "zarr_format": 2,
            "shape": list(shape),
            "chunks": [1] * (len(shape) - 2) + [512, 512],
            "dtype": "<u2",
            "compressor": None,
            "fill_value": 0,
            "order": "C",
            "filters": None,
        }
        levels.append(Level(str(i), ArrayDescriptor.from_v2_dict(meta, str(i))))
    return MultiscaleDescriptor(levels=tuple(levels), axis_types=axis_types[-len(shapes[0]) :])


@pytest.fixture
def multiscale() -> MultiscaleDescriptor:
    return _multiscale([(4, 3, 21, 2048, 1024), (4, 3, 21, 1024, 512), (4, 3, 21, 512, 256)])


class TestParseSelectors:
    def test_named(self) -> None:
        assert parse_selectors("t=0, z=10 ,y=100:300,x=all") == {
            "t": 0,
            "z": 10,
            "y": (100, 300),
            "x": ALL,
        }

    def test_open_ranges(self) -> None:
        assert parse_selectors("y=:300,x=5:") == {"y": (None, 300), "x": (5, None)}
        assert parse_selectors("y=:") == {"y": ALL}

    def test_positional(self) -> None:
        assert parse_selectors("1,0,5") == {0: 1, 1: 0, 2: 5}
        assert parse_selectors("2=7") == {2: 7}

    @pytest.mark.parametrize("text", [None, "", " , "])
    def test_empty(self, text: str | None) -> None:
        assert parse_selectors(text) == {}

    @pytest.mark.parametrize(
        ("text", "axis"),
        [("t=a", "t"), ("t=0,t=1", "t"), ("y=1:b", "y"), ("=3", None)],
    )
    def test_invalid(self, text: str, axis: str | None) -> None:
        with pytest.raises(SelectorError) as excinfo:
            parse_selectors(text)
        assert excinfo.value.axis == axis


def test_parse_resolution() -> None:
    assert parse_resolution("/2") == "2"
    assert parse_resolution(" 0 ") == "0"
    assert parse_resolution(None) is None
    assert parse_resolution(1) == 1
    with pytest.raises(SelectorError):
        parse_resolution(1.5)  # type: ignore[arg-type]


class TestPlan:
    def test_defaults(self, multiscale: MultiscaleDescriptor) -> None:
        resolved = plan(multiscale)
        assert resolved.level == 2
        assert resolved.path == "2"
        assert resolved.selectors == (1, 1, 10, (0, 512), (0, 256))
        assert resolved.window == (1, 1, 10, slice(0, 512), slice(0, 256))
        assert resolved.shape == (512, 256)
        assert resolved.spatial_axes == ("y", "x")
        assert str(resolved) == "t=1,c=1,z=10,y=0:512,x=0:256"

    def test_explicit(self, multiscale: MultiscaleDescriptor) -> None:
        resolved = plan(
            multiscale, {"t": 3, "c": 0, "z": 20, "y": (100, 300), "x": ALL}, "/1"
        )
        assert resolved.level == 1
        assert resolved.selectors == (3, 0, 20, (100, 300), (0, 512))

    def test_positional_keys(self, multiscale: MultiscaleDescriptor) -> None:
        resolved = plan(multiscale, parse_selectors("2,1,0"), 0)
        assert resolved.selectors[:3] == (2, 1, 0)

    def test_resolution_by_index(self, multiscale: MultiscaleDescriptor) -> None:
        assert plan(multiscale, resolution=0).shape == (2048, 1024)

    def test_crop_size(self, multiscale: MultiscaleDescriptor) -> None:
        resolved = plan(multiscale, {"y": (10, 20)}, "0", crop_size=256)
        assert resolved.selectors[3:] == ((10, 20), (0, 256))
        assert plan(multiscale, crop_size=10_000).shape == (512, 256)

    @pytest.mark.parametrize("resolution", ["/7", "/foo", 3, -1, "../0"])
    def test_unknown_resolution(self, multiscale: MultiscaleDescriptor, resolution: Any) -> None:
        with pytest.raises(SelectorError, match="available levels: /0, /1, /2") as excinfo:
            plan(multiscale, resolution=resolution)
        assert excinfo.value.axis == "resolution"

    def test_missing_level_path_names_resolution(self) -> None:
        single = _multiscale([(3, 64, 64)])
        with pytest.raises(SelectorError) as excinfo:
            plan(single, resolution="/2")
        assert excinfo.value.axis == "resolution"

    @pytest.mark.parametrize(
        ("selectors", "axis"),
        [
            ({"q": 0}, "q"),
            ({9: 0}, 9),
            ({"t": 4}, "t"),
            ({"z": -1}, "z"),
            ({"z": (0, 5)}, "z"),
            ({"c": ALL}, "c"),
            ({"y": (0, 513)}, "y"),
            ({"y": (300, 100)}, "y"),
            ({"x": (5, 5)}, "x"),
            ({"y": 0}, "y"),
            ({"x": "0"}, "x"),
            ({"z": 1, 2: 1}, "z"),
        ],
    )
    def test_invalid(
        self, multiscale: MultiscaleDescriptor, selectors: dict[Any, Any], axis: Any
    ) -> None:
        with pytest.raises(SelectorError) as excinfo:
            plan(multiscale, selectors)
        assert excinfo.value.axis == axis

    def test_invalid_crop_size(self, multiscale: MultiscaleDescriptor) -> None:
        with pytest.raises(SelectorError, match="Crop size"):
            plan(multiscale, crop_size=0)

    def test_2d(self) -> None:
        resolved = plan(_multiscale([(30, 40)], axis_types=("space", "space")))
        assert resolved.selectors == ((0, 30), (0, 40))
        assert resolved.spatial_axes == ("y", "x")

    def test_logs_pinned_axes(
        self, multiscale: MultiscaleDescriptor, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="zarrpeek.core.planner"):
            plan(multiscale, {"z": 3})
        assert "Slicing dimension 2 (z) at index 3" in caplog.text
        assert "Slicing dimension 0 (t) at center index 1" in caplog.text


class TestPlanChannels:
    def test_single(self, multiscale: MultiscaleDescriptor) -> None:
        (resolved,) = plan_channels(multiscale)
        assert resolved.selectors[1] == 1

    def test_channels(self, multiscale: MultiscaleDescriptor) -> None:
        resolved = plan_channels(multiscale, {"z": 0}, "/0", [2, 0], crop_size=64)
        assert [r.selectors[:3] for r in resolved] == [(1, 2, 0), (1, 0, 0)]
        assert all(r.shape == (64, 64) for r in resolved)

    def test_channel_axis_by_name(self) -> None:
        untyped = _multiscale([(2, 8, 8)], axis_types=())
        resolved = plan_channels(untyped, channels=[1])
        assert resolved[0].selectors == (1, (0, 8), (0, 8))

    def test_channel_out_of_range(self, multiscale: MultiscaleDescriptor) -> None:
        with pytest.raises(SelectorError) as excinfo:
            plan_channels(multiscale, channels=[0, 3])
        assert excinfo.value.axis == "c"

    def test_no_channel_axis(self) -> None:
        with pytest.raises(SelectorError, match="no channel axis"):
            plan_channels(_multiscale([(5, 8, 8)], axis_types=("space",) * 3), channels=[0])

    def test_channel_also_selected(self, multiscale: MultiscaleDescriptor) -> None:
        with pytest.raises(SelectorError, match="both as an axis and as channels"):
            plan_channels(multiscale, {"c": 0}, channels=[1])

    def test_empty_channels(self, multiscale: MultiscaleDescriptor) -> None:
        with pytest.raises(SelectorError, match="At least one channel"):
            plan_channels(multiscale, channels=[])

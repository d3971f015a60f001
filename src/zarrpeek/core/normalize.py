"""
Intensity normalization and channel compositing.

Each plane is mapped to ``[0, 1]`` through a display range, either given explicitly or
computed by autocontrast (quantiles of a strided sample of the plane). A single plane
becomes a grayscale image; several planes are blended additively, each tinted with one
palette color.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from zarrpeek.core.config import config, parse_max_samples
from zarrpeek.errors import NormalizationError

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

RGB = tuple[int, int, int]

# intensity of a plane with no defined display range
MID_GRAY = 0.5


def parse_color(data: str | Sequence[int]) -> RGB:
    """
    Parse a color given as a hex string (``"FF00FF"``, ``"#ff00ff"``) or an RGB triple.

    Examples
    --------
    >>> parse_color("#00FF80")
    (0, 255, 128)
    """
    if isinstance(data, str):
        text = data.strip().removeprefix("#")
        if len(text) != 6:
            raise ValueError(f"Expected a 6-digit hex color. Got {data!r} instead.")
        try:
            value = int(text, 16)
        except ValueError as e:
            raise ValueError(f"Expected a 6-digit hex color. Got {data!r} instead.") from e
        return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF
    rgb = tuple(data)
    if len(rgb) != 3 or not all(isinstance(v, int) and 0 <= v <= 255 for v in rgb):
        raise ValueError(f"Expected three integers in [0, 255]. Got {data!r} instead.")
    return rgb[0], rgb[1], rgb[2]


@dataclass(frozen=True)
class DisplayRange:
    """The intensities mapped to black (``low``) and full brightness (``high``)."""

    low: float
    high: float

    def __post_init__(self) -> None:
        if math.isnan(self.low) or math.isnan(self.high):
            raise NormalizationError(f"Display range bounds must be numbers, got {self}.")
        if self.high < self.low:
            raise NormalizationError(
                f"Display range is inverted: low {self.low} is above high {self.high}."
            )

    @property
    def is_degenerate(self) -> bool:
        return not self.high > self.low

    @classmethod
    def parse(cls, text: str) -> DisplayRange:
        """
        Parse ``"MIN:MAX"``.

        Examples
        --------
        >>> DisplayRange.parse("100:4000")
        DisplayRange(low=100.0, high=4000.0)
        """
        low, sep, high = text.partition(":")
        if not sep:
            raise NormalizationError(f"Expected a display range of the form MIN:MAX, got {text!r}.")
        try:
            return cls(float(low), float(high))
        except ValueError as e:
            raise NormalizationError(
                f"Expected a display range of the form MIN:MAX, got {text!r}."
            ) from e


def _sample(plane: npt.NDArray[Any], max_samples: int) -> npt.NDArray[Any]:
    flat = plane.ravel()
    if flat.size > max_samples:
        flat = flat[:: math.ceil(flat.size / max_samples)]
    return flat


def compute_display_range(
    plane: npt.NDArray[Any],
    quantiles: tuple[float, float] | None = None,
    max_samples: int | None = None,
) -> DisplayRange | None:
    """
    Autocontrast: the low and high quantiles of a strided sample of ``plane``.

    NaNs and infinities are ignored. Returns ``None`` when no finite sample remains.

    Parameters
    ----------
    plane : numpy.ndarray
        The pixel values.
    quantiles : tuple of float, optional
        Low and high quantiles. Defaults to ``normalization.low_quantile`` and
        ``normalization.high_quantile``.
    max_samples : int, optional
        Upper bound on the number of sampled values. Defaults to
        ``normalization.max_samples``.
    """
    if quantiles is None:
        quantiles = (
            config.get("normalization.low_quantile"),
            config.get("normalization.high_quantile"),
        )
    low_q, high_q = quantiles
    if not 0.0 <= low_q <= high_q <= 1.0:
        raise NormalizationError(f"Invalid quantiles {quantiles}; expected 0 <= low <= high <= 1.")
    if max_samples is None:
        max_samples = config.get("normalization.max_samples")
    max_samples = parse_max_samples(max_samples)

    samples = _sample(plane, max_samples).astype(np.float64)
    samples = samples[np.isfinite(samples)]
    if samples.size == 0:
        return None
    low, high = np.quantile(samples, [low_q, high_q], method="nearest")
    return DisplayRange(float(low), float(high))


def _scale(plane: npt.NDArray[Any], display_range: DisplayRange | None, index: int) -> npt.NDArray[np.float64]:
    if display_range is None or display_range.is_degenerate:
        logger.warning(
            "Plane %d has no usable display range (%s); rendering it as flat gray",
            index,
            display_range,
        )
        return np.full(plane.shape, MID_GRAY)
    logger.info("Plane %d display range: [%g, %g]", index, display_range.low, display_range.high)
    with np.errstate(invalid="ignore", over="ignore"):
        out = (plane.astype(np.float64) - display_range.low) / (display_range.high - display_range.low)
    # NaN is black; infinities saturate to the nearer end of the range
    return np.clip(np.nan_to_num(out, nan=0.0, posinf=1.0, neginf=0.0), 0.0, 1.0)


def normalize(
    planes: Sequence[npt.NDArray[Any]],
    ranges: Sequence[DisplayRange | None] | None = None,
    *,
    palette: Sequence[str | Sequence[int]] | None = None,
    quantiles: tuple[float, float] | None = None,
) -> npt.NDArray[np.uint8]:
    """
    Map one or more planes to an 8-bit RGB image.

    Parameters
    ----------
    planes : sequence of numpy.ndarray
        2-D planes of equal shape.
    ranges : sequence of DisplayRange or None, optional
        One display range per plane; ``None`` entries use autocontrast.
    palette : sequence of colors, optional
        Colors for multi-plane compositing, cycled when shorter than ``planes``.
        Defaults to ``normalization.palette``.
    quantiles : tuple of float, optional
        Autocontrast quantiles, see :func:`compute_display_range`.

    Returns
    -------
    numpy.ndarray
        ``uint8`` array of shape ``(rows, columns, 3)``.

    Raises
    ------
    NormalizationError
        If there is no plane, a plane is empty or not 2-D, or the planes differ in shape.
    """
    if len(planes) == 0:
        raise NormalizationError("Nothing to normalize: no planes were given.")
    shape = planes[0].shape
    for plane in planes:
        if plane.ndim != 2:
            raise NormalizationError(f"Expected 2-D planes, got shape {plane.shape}.")
        if plane.shape != shape:
            raise NormalizationError(f"Planes differ in shape: {shape} and {plane.shape}.")
        if plane.size == 0:
            raise NormalizationError(f"Cannot normalize an empty plane of shape {plane.shape}.")
    if ranges is None:
        ranges = [None] * len(planes)
    if len(ranges) != len(planes):
        raise NormalizationError(f"Got {len(ranges)} display ranges for {len(planes)} planes.")

    scaled = []
    for index, (plane, display_range) in enumerate(zip(planes, ranges, strict=True)):
        if display_range is None:
            display_range = compute_display_range(plane, quantiles)
        scaled.append(_scale(plane, display_range, index))

    if len(scaled) == 1:
        rgb = np.repeat(scaled[0][..., np.newaxis], 3, axis=-1)
    else:
        try:
            colors = [parse_color(c) for c in (palette or config.get("normalization.palette"))]
        except ValueError as e:
            raise NormalizationError(f"Invalid compositing palette: {e}") from e
        if len(colors) == 0:
            raise NormalizationError("The compositing palette is empty.")
        rgb = np.zeros((*shape, 3))
        for index, intensity in enumerate(scaled):
            color = np.asarray(colors[index % len(colors)], dtype=np.float64) / 255
            rgb += intensity[..., np.newaxis] * color
        rgb = np.clip(rgb, 0.0, 1.0)
    return np.round(rgb * 255).astype(np.uint8)

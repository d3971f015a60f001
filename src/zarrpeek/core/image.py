from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from zarrpeek.core.fetch import fetch_regions
from zarrpeek.core.metadata import resolve_multiscale
from zarrpeek.core.normalize import DisplayRange, normalize, parse_color
from zarrpeek.core.planner import (
    AxisSelector,
    ResolutionChoice,
    ResolvedSlice,
    parse_selectors,
    plan_channels,
)
from zarrpeek.core.sync import sync
from zarrpeek.storage import make_store

if TYPE_CHECKING:
    import numpy as np
    import numpy.typing as npt

    from zarrpeek.abc.store import Store
    from zarrpeek.core.metadata import MultiscaleDescriptor
    from zarrpeek.storage import StoreLike

logger = logging.getLogger(__name__)

SelectorsLike = str | Mapping[str | int, AxisSelector] | None
Palette = Sequence[str | Sequence[int]]


@dataclass(frozen=True)
class AsyncImage:
    """
    An asynchronous multiscale image in a store.

    Parameters
    ----------
    store : Store
        The opened store holding the image.
    metadata : MultiscaleDescriptor
        The resolved multiscale metadata.
    """

    store: Store
    metadata: MultiscaleDescriptor

    @classmethod
    async def open(
        cls, store: StoreLike, *, storage_options: dict[str, Any] | None = None
    ) -> AsyncImage:
        """
        Open the image at the root of ``store``.

        Raises
        ------
        FileNotFoundError
            If a local location does not exist.
        MetadataError
            If the metadata is missing or invalid.
        """
        store_ = await make_store(store, storage_options=storage_options)
        return cls(store=store_, metadata=await resolve_multiscale(store_))

    def plan(
        self,
        selectors: SelectorsLike = None,
        resolution: ResolutionChoice = None,
        channels: Sequence[int] | None = None,
        *,
        crop_size: int | None = None,
    ) -> list[ResolvedSlice]:
        """Resolve one slice per requested channel (a single slice without ``channels``)."""
        if isinstance(selectors, str):
            selectors = parse_selectors(selectors)
        return plan_channels(self.metadata, selectors, resolution, channels, crop_size=crop_size)

    async def read_planes(self, slices: Sequence[ResolvedSlice]) -> list[npt.NDArray[Any]]:
        """Fetch the pixels of every slice, under one shared concurrency limit."""
        return await fetch_regions(self.store, [(s.array, s.window) for s in slices])

    def channel_palette(self, channels: Sequence[int] | None) -> list[str] | None:
        """OMERO colors of ``channels``, or ``None`` unless every channel declares a valid one."""
        if channels is None or not self.metadata.channels:
            return None
        colors = []
        for channel in channels:
            if channel >= len(self.metadata.channels):
                return None
            color = self.metadata.channels[channel].color
            try:
                parse_color(color or "")
            except ValueError:
                return None
            colors.append(color)
        return colors

    async def load_rgb(
        self,
        selectors: SelectorsLike = None,
        resolution: ResolutionChoice = None,
        channels: Sequence[int] | None = None,
        *,
        ranges: Sequence[DisplayRange | None] | None = None,
        palette: Palette | None = None,
        quantiles: tuple[float, float] | None = None,
        crop_size: int | None = None,
    ) -> npt.NDArray[np.uint8]:
        """
        Plan, fetch and normalize a slice into an ``(rows, columns, 3)`` ``uint8`` image.

        Parameters
        ----------
        selectors : str or Mapping, optional
            Axis selectors, in the string form accepted by
            :func:`~zarrpeek.core.planner.parse_selectors` or as a mapping.
        resolution : str or int, optional
            Level path or index; the lowest resolution by default.
        channels : sequence of int, optional
            Channels to composite.
        ranges : sequence of DisplayRange, optional
            Display range per channel; autocontrast when omitted.
        palette : sequence of colors, optional
            Compositing colors. Defaults to the OMERO channel colors when every requested
            channel has one, else to the ``normalization.palette`` configuration.
        quantiles : tuple of float, optional
            Autocontrast quantiles.
        crop_size : int, optional
            Limit defaulted spatial axes to ``[0, crop_size)``.
        """
        slices = self.plan(selectors, resolution, channels, crop_size=crop_size)
        planes = await self.read_planes(slices)
        if palette is None and len(planes) > 1:
            palette = self.channel_palette(channels)
            if palette is not None:
                logger.info("Using OMERO channel colors %s", palette)
        return normalize(planes, ranges, palette=palette, quantiles=quantiles)


@dataclass(frozen=True)
class Image:
    """
    A multiscale image in a store.
    """

    _async_image: AsyncImage

    @classmethod
    def open(cls, store: StoreLike, *, storage_options: dict[str, Any] | None = None) -> Image:
        """Open the image at the root of ``store``. See :meth:`AsyncImage.open`."""
        return cls(sync(AsyncImage.open(store, storage_options=storage_options)))

    @property
    def async_image(self) -> AsyncImage:
        """An asynchronous version of the current image."""
        return self._async_image

    @property
    def store(self) -> Store:
        return self._async_image.store

    @property
    def metadata(self) -> MultiscaleDescriptor:
        return self._async_image.metadata

    def plan(
        self,
        selectors: SelectorsLike = None,
        resolution: ResolutionChoice = None,
        channels: Sequence[int] | None = None,
        *,
        crop_size: int | None = None,
    ) -> list[ResolvedSlice]:
        return self._async_image.plan(selectors, resolution, channels, crop_size=crop_size)

    def read_planes(self, slices: Sequence[ResolvedSlice]) -> list[npt.NDArray[Any]]:
        return sync(self._async_image.read_planes(slices))

    def load_rgb(
        self,
        selectors: SelectorsLike = None,
        resolution: ResolutionChoice = None,
        channels: Sequence[int] | None = None,
        *,
        ranges: Sequence[DisplayRange | None] | None = None,
        palette: Palette | None = None,
        quantiles: tuple[float, float] | None = None,
        crop_size: int | None = None,
    ) -> npt.NDArray[np.uint8]:
        """See :meth:`AsyncImage.load_rgb`."""
        return sync(
            self._async_image.load_rgb(
                selectors,
                resolution,
                channels,
                ranges=ranges,
                palette=palette,
                quantiles=quantiles,
                crop_size=crop_size,
            )
        )

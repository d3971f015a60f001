from __future__ import annotations

from typing import TYPE_CHECKING, Any

from zarrpeek.core.image import AsyncImage

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    import numpy.typing as npt

    from zarrpeek.core.image import Palette, SelectorsLike
    from zarrpeek.core.metadata import MultiscaleDescriptor
    from zarrpeek.core.normalize import DisplayRange
    from zarrpeek.core.planner import ResolutionChoice
    from zarrpeek.storage import StoreLike

__all__ = ["load_rgb", "open", "open_multiscale"]


async def open(
    store: StoreLike, *, storage_options: dict[str, Any] | None = None
) -> AsyncImage:
    """Open the multiscale image at ``store``.

    Parameters
    ----------
    store : Store, Path or str
        A store, a local directory, or a URL understood by fsspec (``https://...``).
    storage_options : dict, optional
        If the store is backed by an fsspec-based implementation, then this dict will be
        passed to the filesystem constructor. Ignored otherwise.

    Returns
    -------
    AsyncImage
    """
    return await AsyncImage.open(store, storage_options=storage_options)


async def open_multiscale(
    store: StoreLike, *, storage_options: dict[str, Any] | None = None
) -> MultiscaleDescriptor:
    """Resolve the multiscale metadata at ``store``."""
    image = await open(store, storage_options=storage_options)
    return image.metadata


async def load_rgb(
    store: StoreLike,
    selectors: SelectorsLike = None,
    resolution: ResolutionChoice = None,
    channels: Sequence[int] | None = None,
    *,
    ranges: Sequence[DisplayRange | None] | None = None,
    palette: Palette | None = None,
    quantiles: tuple[float, float] | None = None,
    crop_size: int | None = None,
    storage_options: dict[str, Any] | None = None,
) -> npt.NDArray[np.uint8]:
    """Open ``store`` and load one normalized RGB slice. See :meth:`AsyncImage.load_rgb`."""
    image = await open(store, storage_options=storage_options)
    return await image.load_rgb(
        selectors,
        resolution,
        channels,
        ranges=ranges,
        palette=palette,
        quantiles=quantiles,
        crop_size=crop_size,
    )

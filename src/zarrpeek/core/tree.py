from __future__ import annotations

from typing import TYPE_CHECKING, Any

from asciitree import BoxStyle, LeftAligned
from asciitree.traversal import Traversal

if TYPE_CHECKING:
    from zarrpeek.core.metadata import MultiscaleDescriptor


class TreeNode:
    def __init__(self, text: str, children: list[TreeNode] | None = None) -> None:
        self.text = text
        self.children = children or []

    def get_children(self) -> list[TreeNode]:
        return self.children

    def get_text(self) -> str:
        return self.text


class TreeTraversal(Traversal):  # type: ignore[misc]
    def get_children(self, node: TreeNode) -> list[TreeNode]:
        return node.get_children()

    def get_root(self, tree: TreeNode) -> TreeNode:
        return tree

    def get_text(self, node: TreeNode) -> str:
        return node.get_text()


def _build(multiscale: MultiscaleDescriptor, title: str) -> TreeNode:
    axes = ", ".join(
        name if axis_type is None else f"{name} ({axis_type})"
        for name, axis_type in zip(
            multiscale.axis_names,
            multiscale.axis_types or (None,) * multiscale.ndim,
            strict=True,
        )
    )
    levels = []
    for level in multiscale.levels:
        array = level.array
        text = (
            f"/{level.path} {array.shape} {array.dtype.str} chunks={array.chunk_shape} "
            f"v{array.zarr_format} codecs={','.join(array.codecs.names) or 'none'}"
        )
        if level.scale is not None:
            text += f" scale={level.scale}"
        levels.append(TreeNode(text))
    children = [TreeNode(f"axes: {axes}"), TreeNode("levels", levels)]
    if multiscale.channels:
        channels = []
        for index, channel in enumerate(multiscale.channels):
            text = f"{index}: {channel.label or '-'}"
            if channel.color:
                text += f" #{channel.color}"
            if channel.window:
                text += f" window={channel.window[0]:g}:{channel.window[1]:g}"
            channels.append(TreeNode(text))
        children.append(TreeNode("channels", channels))
    name = multiscale.name or "image"
    if multiscale.version:
        name += f" (OME-NGFF {multiscale.version})"
    return TreeNode(f"{title} {name}", children)


class TreeViewer:
    """Text tree of the levels, axes and channels of a multiscale image."""

    def __init__(self, multiscale: MultiscaleDescriptor, title: str = "/") -> None:
        self.multiscale = multiscale
        self.title = title

        self.text_kwargs: dict[str, Any] = dict(horiz_len=2, label_space=1, indent=1)

        self.unicode_kwargs = dict(
            UP_AND_RIGHT="└",
            HORIZONTAL="─",
            VERTICAL="│",
            VERTICAL_AND_RIGHT="├",
        )

    def __str__(self) -> str:
        drawer = LeftAligned(
            traverse=TreeTraversal(),
            draw=BoxStyle(gfx=self.unicode_kwargs, **self.text_kwargs),
        )
        root = _build(self.multiscale, self.title)
        return str(drawer(root))

    def __repr__(self) -> str:
        return self.__str__()

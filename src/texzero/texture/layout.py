"""Mip extents and buffer layouts for buffer <-> texture copies."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from texzero.constants import BYTES_PER_ROW_ALIGNMENT

Extent3D = tuple[int, int, int]


def align(n: int, alignment: int) -> int:
    return (n + alignment - 1) // alignment * alignment


def virtual_mip_size(dimension: str, size: Extent3D, level: int) -> Extent3D:
    """Extent of mip ``level`` of a texture of base ``size``.

    For 2d textures the third component is the array layer count and does
    not shrink with the level.
    """
    width, height, depth = size
    shrunk_width = max(width >> level, 1)
    shrunk_height = max(height >> level, 1)
    if dimension == "3d":
        return shrunk_width, shrunk_height, max(depth >> level, 1)
    return shrunk_width, shrunk_height, depth


@dataclass(frozen=True)
class TextureCopyLayout:
    """Byte layout of a tightly packed, row-aligned copy of one extent."""

    bytes_per_texel: int
    bytes_per_row: int
    rows_per_image: int
    byte_length: int


def get_texture_copy_layout(bytes_per_texel: int, extent: Extent3D) -> TextureCopyLayout:
    width, height, depth = extent
    bytes_per_row = align(width * bytes_per_texel, BYTES_PER_ROW_ALIGNMENT)
    return TextureCopyLayout(
        bytes_per_texel=bytes_per_texel,
        bytes_per_row=bytes_per_row,
        rows_per_image=height,
        byte_length=bytes_per_row * height * depth,
    )


def fill_texture_data(texel: bytes, layout: TextureCopyLayout, extent: Extent3D) -> bytes:
    """Build upload data with ``texel`` repeated over ``extent``.

    Row padding bytes are left zero.
    """
    width, height, depth = extent
    data = np.zeros((depth, height, layout.bytes_per_row), dtype=np.uint8)
    row = np.tile(np.frombuffer(texel, dtype=np.uint8), width)
    data[:, :, : row.size] = row
    return data.tobytes()


def unpack_texture_data(data: bytes, layout: TextureCopyLayout, extent: Extent3D) -> np.ndarray:
    """Strip row padding: returns a ``(depth, height, width, bytes_per_texel)`` view."""
    width, height, depth = extent
    rows = np.frombuffer(data, dtype=np.uint8, count=layout.byte_length).reshape(
        depth, height, layout.bytes_per_row
    )
    packed = rows[:, :, : width * layout.bytes_per_texel]
    return packed.reshape(depth, height, width, layout.bytes_per_texel)

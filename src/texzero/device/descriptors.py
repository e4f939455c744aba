"""Plain descriptors passed to the device collaborator.

Shader compilation is not part of this package, so draw and compute work is
described with fixed-function descriptors (``DrawDescriptor``,
``TexelLoadDescriptor``) that a device adapter translates into pipelines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from texzero.constants import BufferUsage, TextureUsage

if TYPE_CHECKING:
    from texzero.protocols import Buffer, Texture, TextureView

Extent3D = tuple[int, int, int]
LoadOp = Literal["load", "clear"]
StoreOp = Literal["store", "discard"]
CompareFunction = Literal["never", "less", "equal", "greater", "always"]


@dataclass(frozen=True)
class TextureDescriptor:
    size: Extent3D
    format: str
    usage: TextureUsage
    dimension: str = "2d"
    mip_level_count: int = 1
    sample_count: int = 1


@dataclass(frozen=True)
class TextureViewDescriptor:
    dimension: str = "2d"
    aspect: str = "all"
    base_mip_level: int = 0
    mip_level_count: int = 1
    base_array_layer: int = 0
    array_layer_count: int = 1


@dataclass(frozen=True)
class BufferDescriptor:
    size: int
    usage: BufferUsage


@dataclass(frozen=True)
class ImageCopyTexture:
    texture: Texture
    mip_level: int = 0
    origin: Extent3D = (0, 0, 0)
    aspect: str = "all"


@dataclass(frozen=True)
class ImageCopyBuffer:
    buffer: Buffer
    bytes_per_row: int
    rows_per_image: int
    offset: int = 0


@dataclass(frozen=True)
class ColorAttachment:
    view: TextureView
    load_op: LoadOp
    store_op: StoreOp
    clear_value: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    resolve_target: TextureView | None = None


@dataclass(frozen=True)
class DepthStencilAttachment:
    view: TextureView
    depth_load_op: LoadOp = "load"
    depth_store_op: StoreOp = "store"
    depth_clear_value: float = 0.0
    stencil_load_op: LoadOp = "load"
    stencil_store_op: StoreOp = "store"
    stencil_clear_value: int = 0


@dataclass(frozen=True)
class RenderPassDescriptor:
    color_attachments: tuple[ColorAttachment, ...] = ()
    depth_stencil_attachment: DepthStencilAttachment | None = None


@dataclass(frozen=True)
class DrawDescriptor:
    """A full-viewport draw.

    Every fragment has depth ``depth``; fragments passing the depth and
    stencil comparisons write ``color`` to all colour attachments, either
    replacing the stored value or added to it (``blend="add"``). Depth and
    stencil values are never written.
    """

    color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    blend: Literal["replace", "add"] = "replace"
    depth: float = 0.0
    depth_compare: CompareFunction | None = None
    stencil_compare: CompareFunction | None = None
    stencil_reference: int = 0


@dataclass(frozen=True)
class TexelLoadDescriptor:
    """A compute dispatch loading every texel of ``view`` into ``destination``.

    Each texel becomes four 32-bit components (R, G, B, A) typed after the
    view's sample type: float32 for float and depth, uint32 for uint and
    stencil, int32 for sint. Channels the format lacks read as (0, 0, 0, 1).
    """

    view: TextureView
    binding: Literal["sampled", "storage"]
    destination: Buffer
    sample_index: int = 0

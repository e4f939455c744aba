"""In-memory reference implementation of the device protocols.

``SimulatedDevice`` keeps every texture subresource in numpy arrays and
applies the WebGPU rules the zero-initialization oracle depends on:

- freshly allocated memory holds recycled, non-zero bytes;
- a subresource that has never been written (or whose contents were
  discarded by a store operation) is zero-filled lazily, the first time it
  is read or loaded;
- copies, render attachments and bindings are validated against the
  texture usage, the format capabilities and the sample count.

Faults can be injected to model broken implementations, which is how the
oracle's own failure paths are exercised:

- ``no_lazy_clear``: uninitialized memory is returned as-is;
- ``discard_keeps_contents``: store-op discard leaves contents in place;
- ``clear_whole_level``: a lazy clear zeroes every layer of the mip level,
  including already initialized ones.

Multisampled textures store one value per texel; every write in this model
covers all samples of a texel, so samples never diverge.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np
from loguru import logger

from texzero.constants import (
    DEFAULT_MEMORY_LIMIT_MB,
    RECYCLED_MEMORY_BYTE,
    BufferUsage,
    TextureUsage,
)
from texzero.device.descriptors import (
    ColorAttachment,
    DrawDescriptor,
    Extent3D,
    ImageCopyBuffer,
    ImageCopyTexture,
    RenderPassDescriptor,
    TexelLoadDescriptor,
    TextureDescriptor,
    TextureViewDescriptor,
)
from texzero.exceptions import (
    DeviceOutOfMemoryError,
    DeviceValidationError,
    UnsupportedCapabilityError,
)
from texzero.texture.formats import (
    RGBA,
    FormatInfo,
    decode_color_array,
    encode_color_array,
    encode_texel,
    get_format_info,
    quantize_depth,
)
from texzero.texture.layout import virtual_mip_size

KNOWN_FAULTS = frozenset({"no_lazy_clear", "discard_keeps_contents", "clear_whole_level"})

# Depth value left in recycled depth memory
_RECYCLED_DEPTH = 0.3

Key = tuple[int, int]  # (mip level, array layer)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise DeviceValidationError(message)


# =============================================================================
# Buffers
# =============================================================================


class SimulatedBuffer:
    def __init__(
        self,
        device: SimulatedDevice,
        size: int,
        usage: BufferUsage,
        contents: bytes | None = None,
    ):
        self._device = device
        self._size = size
        self.usage = usage
        self.data = np.zeros(size, dtype=np.uint8)
        if contents is not None:
            _require(len(contents) <= size, "Buffer contents exceed buffer size")
            self.data[: len(contents)] = np.frombuffer(contents, dtype=np.uint8)
        self.destroyed = False

    @property
    def size(self) -> int:
        return self._size

    def map_read(self) -> bytes:
        _require(not self.destroyed, "Cannot map a destroyed buffer")
        _require(bool(self.usage & BufferUsage.MAP_READ), "Buffer lacks MAP_READ usage")
        return self.data.tobytes()

    def destroy(self) -> None:
        if not self.destroyed:
            self.destroyed = True
            self._device._release_later(self._size)


# =============================================================================
# Textures
# =============================================================================


@dataclass(frozen=True)
class SimulatedTextureView:
    texture: SimulatedTexture
    descriptor: TextureViewDescriptor

    @property
    def key(self) -> Key:
        return (self.descriptor.base_mip_level, self.descriptor.base_array_layer)

    @property
    def is_single_subresource(self) -> bool:
        return self.descriptor.mip_level_count == 1 and self.descriptor.array_layer_count == 1


class SimulatedTexture:
    def __init__(self, device: SimulatedDevice, descriptor: TextureDescriptor, info: FormatInfo):
        self._device = device
        self._descriptor = descriptor
        self.info = info
        self.destroyed = False
        self._data: dict[Key, dict[str, np.ndarray]] = {}
        self._initialized: set[tuple[int, int, str]] = set()

        for level in range(descriptor.mip_level_count):
            width, height, depth = self.mip_extent(level)
            for layer in range(self.layer_count):
                self._data[(level, layer)] = {
                    aspect: self._recycled(aspect, (depth, height, width))
                    for aspect in info.aspects
                }

    @property
    def descriptor(self) -> TextureDescriptor:
        return self._descriptor

    @property
    def layer_count(self) -> int:
        return 1 if self._descriptor.dimension == "3d" else self._descriptor.size[2]

    def mip_extent(self, level: int) -> Extent3D:
        """Per-subresource extent: depth is 1 for 2d layers."""
        width, height, depth = virtual_mip_size(
            self._descriptor.dimension, self._descriptor.size, level
        )
        return (width, height, depth if self._descriptor.dimension == "3d" else 1)

    def byte_size(self) -> int:
        total = 0
        for (level, _), aspects in self._data.items():
            width, height, depth = self.mip_extent(level)
            for aspect in aspects:
                total += width * height * depth * self.info.bytes_per_texel(aspect)  # type: ignore[arg-type]
        return total * self._descriptor.sample_count

    def _recycled(self, aspect: str, shape: tuple[int, int, int]) -> np.ndarray:
        if aspect == "color":
            return np.full(shape + (self.info.bytes_per_texel("color"),), RECYCLED_MEMORY_BYTE, np.uint8)
        if aspect == "depth":
            return np.full(shape, _RECYCLED_DEPTH, np.float64)
        return np.full(shape, RECYCLED_MEMORY_BYTE, np.uint8)

    def create_view(self, descriptor: TextureViewDescriptor | None = None) -> SimulatedTextureView:
        _require(not self.destroyed, "Cannot create a view of a destroyed texture")
        if descriptor is None:
            descriptor = TextureViewDescriptor(
                dimension=self._descriptor.dimension,
                mip_level_count=self._descriptor.mip_level_count,
                array_layer_count=self.layer_count,
            )
        _require(
            descriptor.base_mip_level + descriptor.mip_level_count
            <= self._descriptor.mip_level_count,
            "View mip range exceeds texture",
        )
        _require(
            descriptor.base_array_layer + descriptor.array_layer_count <= self.layer_count,
            "View layer range exceeds texture",
        )
        self.select_aspects(descriptor.aspect)
        return SimulatedTextureView(self, descriptor)

    def destroy(self) -> None:
        if not self.destroyed:
            self.destroyed = True
            self._device._release_later(self.byte_size())

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    def select_aspects(self, aspect: str) -> tuple[str, ...]:
        if aspect == "all":
            return self.info.aspects
        wanted = "depth" if aspect == "depth-only" else "stencil"
        _require(
            aspect in ("depth-only", "stencil-only") and wanted in self.info.aspects,
            f"Aspect {aspect!r} not present in {self.info.name}",
        )
        return (wanted,)

    def single_aspect(self, aspect: str) -> str:
        aspects = self.select_aspects(aspect)
        _require(len(aspects) == 1, f"{self.info.name} copies must select a single aspect")
        return aspects[0]

    def contents(self, key: Key, aspect: str) -> np.ndarray:
        """Array backing ``key``; lazily zero-filled if never written."""
        _require(not self.destroyed, "Texture used after destroy")
        _require(key in self._data, f"Subresource {key} out of range")
        if (*key, aspect) not in self._initialized:
            self._lazy_clear(key, aspect)
        return self._data[key][aspect]

    def storage(self, key: Key, aspect: str) -> np.ndarray:
        """Array backing ``key`` without triggering a lazy clear (full overwrite)."""
        _require(not self.destroyed, "Texture used after destroy")
        _require(key in self._data, f"Subresource {key} out of range")
        return self._data[key][aspect]

    def mark_initialized(self, key: Key, aspect: str) -> None:
        self._initialized.add((*key, aspect))

    def discard(self, key: Key, aspect: str) -> None:
        if "discard_keeps_contents" in self._device.faults:
            return
        self._initialized.discard((*key, aspect))
        array = self._data[key][aspect]
        array[...] = self._recycled(aspect, array.shape[:3])

    def _lazy_clear(self, key: Key, aspect: str) -> None:
        if "no_lazy_clear" in self._device.faults:
            return
        keys = [key]
        if "clear_whole_level" in self._device.faults:
            keys = [k for k in self._data if k[0] == key[0]]
        for k in keys:
            self._data[k][aspect][...] = 0
            self._initialized.add((*k, aspect))


# =============================================================================
# Aspect <-> bytes
# =============================================================================


def _aspect_to_bytes(info: FormatInfo, aspect: str, array: np.ndarray) -> np.ndarray:
    if aspect == "color":
        return array
    if aspect == "stencil":
        return array.astype(np.uint8)[..., np.newaxis]
    if info.depth_type == "unorm16":
        raw = np.floor(np.clip(array, 0.0, 1.0) * 0xFFFF + 0.5).astype("<u2")
    else:
        raw = array.astype("<f4")
    return np.ascontiguousarray(raw[..., np.newaxis]).view(np.uint8)


def _bytes_to_aspect(info: FormatInfo, aspect: str, texels: np.ndarray) -> np.ndarray:
    if aspect == "color":
        return texels
    if aspect == "stencil":
        return texels[..., 0].copy()
    if info.depth_type == "unorm16":
        return np.ascontiguousarray(texels).view("<u2")[..., 0] / 0xFFFF
    return np.ascontiguousarray(texels).view("<f4")[..., 0].astype(np.float64)


_COMPARE: dict[str, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    "never": lambda ref, stored: np.zeros_like(stored, dtype=bool),
    "less": lambda ref, stored: ref < stored,
    "equal": lambda ref, stored: ref == stored,
    "greater": lambda ref, stored: ref > stored,
    "always": lambda ref, stored: np.ones_like(stored, dtype=bool),
}


# =============================================================================
# Command encoding
# =============================================================================


class SimulatedCommandBuffer:
    def __init__(self, commands: list[tuple[str, Callable[[], None]]]):
        self.commands = commands
        self.submitted = False


class SimulatedRenderPassEncoder:
    def __init__(self, encoder: SimulatedCommandEncoder, descriptor: RenderPassDescriptor):
        self._encoder = encoder
        self._descriptor = descriptor
        self._draws: list[DrawDescriptor] = []
        self._ended = False

    def draw(self, draw: DrawDescriptor) -> None:
        _require(not self._ended, "Render pass already ended")
        if draw.blend == "add":
            for attachment in self._descriptor.color_attachments:
                info = attachment.view.texture.info
                _require(info.blendable, f"{info.name} is not blendable")
        self._draws.append(draw)

    def end(self) -> None:
        _require(not self._ended, "Render pass already ended")
        self._ended = True
        descriptor, draws = self._descriptor, list(self._draws)
        self._encoder._record("render_pass", lambda: _execute_render_pass(descriptor, draws))


class SimulatedComputePassEncoder:
    def __init__(self, encoder: SimulatedCommandEncoder):
        self._encoder = encoder
        self._ended = False

    def dispatch_texel_load(self, load: TexelLoadDescriptor) -> None:
        _require(not self._ended, "Compute pass already ended")
        view = load.view
        texture = view.texture
        _require(isinstance(view, SimulatedTextureView), "Foreign texture view")
        _require(view.is_single_subresource, "Texel loads read a single subresource")
        if load.binding == "sampled":
            _require(
                bool(texture.descriptor.usage & TextureUsage.TEXTURE_BINDING),
                "Texture lacks TEXTURE_BINDING usage",
            )
        else:
            _require(
                bool(texture.descriptor.usage & TextureUsage.STORAGE_BINDING),
                "Texture lacks STORAGE_BINDING usage",
            )
            _require(texture.info.storage, f"{texture.info.name} cannot be a storage texture")
            _require(texture.descriptor.sample_count == 1, "Storage textures cannot be multisampled")
        _require(
            load.sample_index < texture.descriptor.sample_count, "Sample index out of range"
        )
        destination = load.destination
        _require(bool(destination.usage & BufferUsage.STORAGE), "Buffer lacks STORAGE usage")
        width, height, depth = texture.mip_extent(view.descriptor.base_mip_level)
        _require(destination.size >= width * height * depth * 16, "Destination buffer too small")
        aspect = texture.single_aspect(view.descriptor.aspect)
        self._encoder._record("texel_load", lambda: _execute_texel_load(view, aspect, destination))

    def end(self) -> None:
        _require(not self._ended, "Compute pass already ended")
        self._ended = True


class SimulatedCommandEncoder:
    def __init__(self, device: SimulatedDevice):
        self._device = device
        self._commands: list[tuple[str, Callable[[], None]]] = []
        self._finished = False

    def _record(self, name: str, command: Callable[[], None]) -> None:
        _require(not self._finished, "Command encoder already finished")
        self._commands.append((name, command))

    def _copy_slabs(
        self, copy: ImageCopyTexture, extent: Extent3D
    ) -> tuple[list[tuple[Key, slice]], slice, slice, bool]:
        """Resolve a texture copy region to per-subresource depth slices."""
        texture = copy.texture
        _require(isinstance(texture, SimulatedTexture), "Foreign texture")
        _require(not texture.destroyed, "Texture used after destroy")
        _require(copy.mip_level < texture.descriptor.mip_level_count, "Copy mip level out of range")
        x, y, z = copy.origin
        width, height, depth = extent
        mip_width, mip_height, mip_depth = texture.mip_extent(copy.mip_level)
        _require(x + width <= mip_width and y + height <= mip_height, "Copy exceeds mip extent")
        if texture.descriptor.dimension == "3d":
            _require(z + depth <= mip_depth, "Copy exceeds mip depth")
            slabs = [((copy.mip_level, 0), slice(z, z + depth))]
            full_depth = depth == mip_depth
        else:
            _require(z + depth <= texture.layer_count, "Copy exceeds array layers")
            slabs = [((copy.mip_level, layer), slice(0, 1)) for layer in range(z, z + depth)]
            full_depth = True
        full = full_depth and (x, y) == (0, 0) and (width, height) == (mip_width, mip_height)
        return slabs, slice(y, y + height), slice(x, x + width), full

    def _buffer_region(self, copy: ImageCopyBuffer, bytes_per_texel: int, extent: Extent3D) -> np.ndarray:
        width, height, depth = extent
        _require(copy.bytes_per_row % 256 == 0, "bytes_per_row must be a multiple of 256")
        _require(copy.bytes_per_row >= width * bytes_per_texel, "bytes_per_row too small")
        _require(copy.rows_per_image >= height, "rows_per_image too small")
        length = copy.bytes_per_row * copy.rows_per_image * depth
        buffer = copy.buffer
        _require(isinstance(buffer, SimulatedBuffer), "Foreign buffer")
        _require(copy.offset + length <= buffer.size, "Copy exceeds buffer size")
        region = buffer.data[copy.offset : copy.offset + length]
        rows = region.reshape(depth, copy.rows_per_image, copy.bytes_per_row)
        return rows[:, :height, : width * bytes_per_texel]

    def copy_buffer_to_buffer(
        self,
        source: SimulatedBuffer,
        source_offset: int,
        destination: SimulatedBuffer,
        destination_offset: int,
        size: int,
    ) -> None:
        _require(bool(source.usage & BufferUsage.COPY_SRC), "Source buffer lacks COPY_SRC usage")
        _require(bool(destination.usage & BufferUsage.COPY_DST), "Destination buffer lacks COPY_DST usage")
        _require(size % 4 == 0, "Buffer copy size must be a multiple of 4")
        _require(source_offset + size <= source.size, "Copy exceeds source buffer")
        _require(destination_offset + size <= destination.size, "Copy exceeds destination buffer")

        def run() -> None:
            chunk = source.data[source_offset : source_offset + size].copy()
            destination.data[destination_offset : destination_offset + size] = chunk

        self._record("copy_buffer_to_buffer", run)

    def copy_buffer_to_texture(
        self, source: ImageCopyBuffer, destination: ImageCopyTexture, extent: Extent3D
    ) -> None:
        texture = destination.texture
        _require(bool(source.buffer.usage & BufferUsage.COPY_SRC), "Buffer lacks COPY_SRC usage")
        _require(bool(texture.descriptor.usage & TextureUsage.COPY_DST), "Texture lacks COPY_DST usage")
        _require(texture.descriptor.sample_count == 1, "Cannot copy into a multisampled texture")
        _require(texture.info.copy_dst, f"{texture.info.name} is not a buffer copy destination")
        aspect = texture.single_aspect(destination.aspect)
        info = texture.info
        bytes_per_texel = info.bytes_per_texel(aspect)  # type: ignore[arg-type]
        self._buffer_region(source, bytes_per_texel, extent)
        slabs, rows, cols, full = self._copy_slabs(destination, extent)
        width, height, depth = extent

        def run() -> None:
            region = self._buffer_region(source, bytes_per_texel, extent)
            texels = region.reshape(depth, height, width, bytes_per_texel)
            offset = 0
            for key, zs in slabs:
                target = texture.storage(key, aspect) if full else texture.contents(key, aspect)
                count = zs.stop - zs.start
                target[zs, rows, cols] = _bytes_to_aspect(info, aspect, texels[offset : offset + count])
                texture.mark_initialized(key, aspect)
                offset += count

        self._record("copy_buffer_to_texture", run)

    def copy_texture_to_buffer(
        self, source: ImageCopyTexture, destination: ImageCopyBuffer, extent: Extent3D
    ) -> None:
        texture = source.texture
        _require(bool(texture.descriptor.usage & TextureUsage.COPY_SRC), "Texture lacks COPY_SRC usage")
        _require(bool(destination.buffer.usage & BufferUsage.COPY_DST), "Buffer lacks COPY_DST usage")
        _require(texture.descriptor.sample_count == 1, "Cannot copy from a multisampled texture")
        _require(texture.info.copy_src, f"{texture.info.name} is not a buffer copy source")
        aspect = texture.single_aspect(source.aspect)
        info = texture.info
        bytes_per_texel = info.bytes_per_texel(aspect)  # type: ignore[arg-type]
        self._buffer_region(destination, bytes_per_texel, extent)
        slabs, rows, cols, _ = self._copy_slabs(source, extent)
        width, height, depth = extent

        def run() -> None:
            region = self._buffer_region(destination, bytes_per_texel, extent)
            offset = 0
            for key, zs in slabs:
                texels = _aspect_to_bytes(info, aspect, texture.contents(key, aspect)[zs, rows, cols])
                count = zs.stop - zs.start
                region[offset : offset + count] = texels.reshape(count, height, width * bytes_per_texel)
                offset += count

        self._record("copy_texture_to_buffer", run)

    def copy_texture_to_texture(
        self, source: ImageCopyTexture, destination: ImageCopyTexture, extent: Extent3D
    ) -> None:
        src, dst = source.texture, destination.texture
        _require(bool(src.descriptor.usage & TextureUsage.COPY_SRC), "Source lacks COPY_SRC usage")
        _require(bool(dst.descriptor.usage & TextureUsage.COPY_DST), "Destination lacks COPY_DST usage")
        _require(src.info.name == dst.info.name, "Texture copies require matching formats")
        _require(
            src.descriptor.sample_count == dst.descriptor.sample_count,
            "Texture copies require matching sample counts",
        )
        aspects = src.select_aspects(source.aspect)
        _require(aspects == dst.select_aspects(destination.aspect), "Copy aspects differ")
        src_slabs, src_rows, src_cols, _ = self._copy_slabs(source, extent)
        dst_slabs, dst_rows, dst_cols, full = self._copy_slabs(destination, extent)

        def run() -> None:
            for aspect in aspects:
                for (src_key, src_z), (dst_key, dst_z) in zip(src_slabs, dst_slabs):
                    data = src.contents(src_key, aspect)[src_z, src_rows, src_cols].copy()
                    target = dst.storage(dst_key, aspect) if full else dst.contents(dst_key, aspect)
                    target[dst_z, dst_rows, dst_cols] = data
                    dst.mark_initialized(dst_key, aspect)

        self._record("copy_texture_to_texture", run)

    def begin_render_pass(self, descriptor: RenderPassDescriptor) -> SimulatedRenderPassEncoder:
        _validate_render_pass(descriptor)
        return SimulatedRenderPassEncoder(self, descriptor)

    def begin_compute_pass(self) -> SimulatedComputePassEncoder:
        return SimulatedComputePassEncoder(self)

    def finish(self) -> SimulatedCommandBuffer:
        _require(not self._finished, "Command encoder already finished")
        self._finished = True
        return SimulatedCommandBuffer(self._commands)


# =============================================================================
# Pass execution
# =============================================================================


def _validate_attachment_view(view: SimulatedTextureView) -> None:
    texture = view.texture
    _require(isinstance(view, SimulatedTextureView), "Foreign texture view")
    _require(
        bool(texture.descriptor.usage & TextureUsage.RENDER_ATTACHMENT),
        "Texture lacks RENDER_ATTACHMENT usage",
    )
    _require(texture.descriptor.dimension == "2d", "Only 2d textures can be attachments")
    _require(view.is_single_subresource, "Attachments must view a single subresource")
    _require(texture.info.renderable, f"{texture.info.name} is not renderable")


def _validate_render_pass(descriptor: RenderPassDescriptor) -> None:
    views = [a.view for a in descriptor.color_attachments]
    if descriptor.depth_stencil_attachment is not None:
        views.append(descriptor.depth_stencil_attachment.view)
    _require(bool(views), "Render pass has no attachments")
    for view in views:
        _validate_attachment_view(view)
    extents = {v.texture.mip_extent(v.descriptor.base_mip_level) for v in views}
    samples = {v.texture.descriptor.sample_count for v in views}
    _require(len(extents) == 1, "Attachments differ in size")
    _require(len(samples) == 1, "Attachments differ in sample count")
    for attachment in descriptor.color_attachments:
        _require(attachment.view.texture.info.color, "Colour attachment needs a colour format")
        resolve = attachment.resolve_target
        if resolve is not None:
            _validate_attachment_view(resolve)
            _require(attachment.view.texture.descriptor.sample_count > 1, "Resolve needs a multisampled source")
            _require(resolve.texture.descriptor.sample_count == 1, "Resolve target must be single-sampled")
            _require(resolve.texture.info.name == attachment.view.texture.info.name, "Resolve format differs")
    if descriptor.depth_stencil_attachment is not None:
        info = descriptor.depth_stencil_attachment.view.texture.info
        _require(not info.color, "Depth-stencil attachment needs a depth or stencil format")


def _load_color(attachment: ColorAttachment) -> np.ndarray:
    view = attachment.view
    texture = view.texture
    if attachment.load_op == "clear":
        array = texture.storage(view.key, "color")
        texel = encode_texel(texture.info, dict(zip(RGBA, attachment.clear_value)))
        array[...] = np.frombuffer(texel, dtype=np.uint8)
        texture.mark_initialized(view.key, "color")
        return array
    return texture.contents(view.key, "color")


def _execute_render_pass(descriptor: RenderPassDescriptor, draws: Sequence[DrawDescriptor]) -> None:
    colors = [(a, _load_color(a)) for a in descriptor.color_attachments]

    depth: np.ndarray | None = None
    stencil: np.ndarray | None = None
    ds = descriptor.depth_stencil_attachment
    ds_aspects: tuple[str, ...] = ()
    if ds is not None:
        texture, key = ds.view.texture, ds.view.key
        ds_aspects = texture.select_aspects(ds.view.descriptor.aspect)
        if "depth" in ds_aspects:
            if ds.depth_load_op == "clear":
                depth = texture.storage(key, "depth")
                depth[...] = quantize_depth(texture.info, ds.depth_clear_value)
                texture.mark_initialized(key, "depth")
            else:
                depth = texture.contents(key, "depth")
        if "stencil" in ds_aspects:
            if ds.stencil_load_op == "clear":
                stencil = texture.storage(key, "stencil")
                stencil[...] = ds.stencil_clear_value & 0xFF
                texture.mark_initialized(key, "stencil")
            else:
                stencil = texture.contents(key, "stencil")

    planes = [array.shape[:3] for _, array in colors] + [
        a.shape for a in (depth, stencil) if a is not None
    ]
    for draw in draws:
        passed = np.ones(planes[0], dtype=bool)
        if draw.depth_compare is not None and depth is not None:
            fragment = quantize_depth(ds.view.texture.info, draw.depth)  # type: ignore[union-attr]
            passed &= _COMPARE[draw.depth_compare](np.float64(fragment), depth)
        if draw.stencil_compare is not None and stencil is not None:
            passed &= _COMPARE[draw.stencil_compare](np.uint8(draw.stencil_reference & 0xFF), stencil)
        for attachment, array in colors:
            info = attachment.view.texture.info
            if draw.blend == "replace":
                texel = np.frombuffer(encode_texel(info, dict(zip(RGBA, draw.color))), dtype=np.uint8)
                array[passed] = texel
            else:
                source = np.array([draw.color[RGBA.index(c)] for c in info.channels])
                blended = encode_color_array(info, decode_color_array(info, array) + source)
                array[passed] = blended[passed]

    for attachment, array in colors:
        view = attachment.view
        if attachment.resolve_target is not None:
            resolve = attachment.resolve_target
            resolve.texture.storage(resolve.key, "color")[...] = array
            resolve.texture.mark_initialized(resolve.key, "color")
        if attachment.store_op == "discard":
            view.texture.discard(view.key, "color")
    if ds is not None:
        if "depth" in ds_aspects and ds.depth_store_op == "discard":
            ds.view.texture.discard(ds.view.key, "depth")
        if "stencil" in ds_aspects and ds.stencil_store_op == "discard":
            ds.view.texture.discard(ds.view.key, "stencil")


def _execute_texel_load(view: SimulatedTextureView, aspect: str, destination: SimulatedBuffer) -> None:
    texture = view.texture
    info = texture.info
    contents = texture.contents(view.key, aspect)
    out = np.zeros(contents.shape[:3] + (4,), dtype=np.float64)
    out[..., 3] = 1.0
    if aspect == "color":
        decoded = decode_color_array(info, contents)
        for i, channel in enumerate(info.channels):
            out[..., RGBA.index(channel)] = decoded[..., i]
        dtype = {"uint": "<u4", "sint": "<i4"}.get(info.sample_type, "<f4")
    elif aspect == "depth":
        out[..., 0] = contents
        dtype = "<f4"
    else:
        out[..., 0] = contents
        dtype = "<u4"
    raw = np.ascontiguousarray(out.astype(dtype)).view(np.uint8).reshape(-1)
    destination.data[: raw.size] = raw


# =============================================================================
# Device and pool
# =============================================================================


class SimulatedQueue:
    def __init__(self, device: SimulatedDevice):
        self._device = device

    def submit(self, command_buffers: Sequence[SimulatedCommandBuffer]) -> None:
        for command_buffer in command_buffers:
            _require(not command_buffer.submitted, "Command buffer submitted twice")
            command_buffer.submitted = True
            for name, command in command_buffer.commands:
                command()
                self._device.command_log.append(name)

    def on_submitted_work_done(self) -> None:
        self._device.reclaim()


class SimulatedDevice:
    """A single in-memory device.

    Args:
        features: Optional features the device exposes
            (e.g. ``"depth32float-stencil8"``).
        memory_limit_bytes: Allocation budget for live textures and buffers.
        faults: Behaviours to break on purpose; see module docstring.
    """

    def __init__(
        self,
        features: frozenset[str] | set[str] | tuple[str, ...] = frozenset(),
        memory_limit_bytes: int = DEFAULT_MEMORY_LIMIT_MB * 1024 * 1024,
        faults: frozenset[str] | set[str] | tuple[str, ...] = frozenset(),
    ):
        unknown = set(faults) - KNOWN_FAULTS
        if unknown:
            raise ValueError(f"Unknown fault(s): {sorted(unknown)}")
        self._features = frozenset(features)
        self.faults = frozenset(faults)
        self.memory_limit_bytes = memory_limit_bytes
        self.allocated_bytes = 0
        self._pending_release = 0
        self.command_log: list[str] = []
        self._queue = SimulatedQueue(self)

    @property
    def features(self) -> frozenset[str]:
        return self._features

    @property
    def queue(self) -> SimulatedQueue:
        return self._queue

    def _allocate(self, size: int) -> None:
        if self.allocated_bytes + size > self.memory_limit_bytes:
            raise DeviceOutOfMemoryError(
                f"Out of device memory: need {size} bytes, "
                f"{self.memory_limit_bytes - self.allocated_bytes} available"
            )
        self.allocated_bytes += size

    def _release_later(self, size: int) -> None:
        self._pending_release += size

    def reclaim(self) -> int:
        """Free memory of destroyed resources. Returns the bytes released."""
        released = self._pending_release
        self.allocated_bytes -= released
        self._pending_release = 0
        return released

    def create_texture(self, descriptor: TextureDescriptor) -> SimulatedTexture:
        try:
            info = get_format_info(descriptor.format)
        except KeyError as e:
            raise DeviceValidationError(str(e)) from e
        if info.feature is not None and info.feature not in self._features:
            raise UnsupportedCapabilityError(f"{info.name} requires feature {info.feature!r}")

        usage = descriptor.usage
        width, height, depth = descriptor.size
        _require(min(width, height, depth) >= 1, "Texture size must be non-zero")
        largest = max(width, height, depth if descriptor.dimension == "3d" else 1)
        _require(
            1 <= descriptor.mip_level_count <= largest.bit_length(), "Too many mip levels"
        )
        _require(descriptor.sample_count in (1, 4), "Sample count must be 1 or 4")
        if descriptor.dimension == "3d":
            _require(info.color, "3d textures need a colour format")
        if descriptor.sample_count > 1:
            _require(info.multisample, f"{info.name} cannot be multisampled")
            _require(descriptor.dimension == "2d" and depth == 1, "Multisampled textures are single-layer 2d")
            _require(descriptor.mip_level_count == 1, "Multisampled textures have one mip level")
            _require(not usage & TextureUsage.STORAGE_BINDING, "Multisampled textures cannot be storage")
        if usage & TextureUsage.RENDER_ATTACHMENT:
            _require(info.renderable, f"{info.name} is not renderable")
            _require(descriptor.dimension == "2d", "Only 2d textures can be render attachments")
        if usage & TextureUsage.STORAGE_BINDING:
            _require(info.storage, f"{info.name} cannot be a storage texture")

        texture = SimulatedTexture(self, descriptor, info)
        self._allocate(texture.byte_size())
        logger.debug(
            "Created {} texture {}x{}x{} ({} mips, {} samples)",
            info.name,
            width,
            height,
            depth,
            descriptor.mip_level_count,
            descriptor.sample_count,
        )
        return texture

    def create_buffer(
        self, size: int, usage: BufferUsage, contents: bytes | None = None
    ) -> SimulatedBuffer:
        _require(size > 0, "Buffer size must be positive")
        if usage & BufferUsage.MAP_READ:
            _require(
                not usage & ~(BufferUsage.MAP_READ | BufferUsage.COPY_DST),
                "MAP_READ combines only with COPY_DST",
            )
        self._allocate(size)
        return SimulatedBuffer(self, size, usage, contents)

    def create_command_encoder(self) -> SimulatedCommandEncoder:
        return SimulatedCommandEncoder(self)


class SimulatedDevicePool:
    """Hands out a fresh ``SimulatedDevice`` per lease."""

    def __init__(
        self,
        features: frozenset[str] | set[str] | tuple[str, ...] = frozenset(),
        memory_limit_bytes: int = DEFAULT_MEMORY_LIMIT_MB * 1024 * 1024,
        faults: frozenset[str] | set[str] | tuple[str, ...] = frozenset(),
    ):
        self.features = frozenset(features)
        self.memory_limit_bytes = memory_limit_bytes
        self.faults = frozenset(faults)
        self.leases = 0

    @contextmanager
    def acquire(self, required_features: frozenset[str] = frozenset()) -> Iterator[SimulatedDevice]:
        missing = set(required_features) - self.features
        if missing:
            raise UnsupportedCapabilityError(f"No device offers feature(s): {', '.join(sorted(missing))}")
        device = SimulatedDevice(self.features, self.memory_limit_bytes, self.faults)
        self.leases += 1
        try:
            yield device
        finally:
            device.queue.on_submitted_work_done()
            if device.allocated_bytes:
                logger.debug("Device released with {} bytes still allocated", device.allocated_bytes)

"""Read-back checks, one per read method.

Every checker has the same shape: given the oracle driving the case, the
texture, the expected state and a subresource range, it reads each
subresource back through its read method and returns one ``Mismatch`` per
subresource whose contents differ from the state's encoding.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import ExitStack
from typing import TYPE_CHECKING

import numpy as np

from texzero.constants import BufferUsage, TextureUsage
from texzero.device.descriptors import (
    ColorAttachment,
    DepthStencilAttachment,
    DrawDescriptor,
    Extent3D,
    ImageCopyBuffer,
    ImageCopyTexture,
    RenderPassDescriptor,
    TexelLoadDescriptor,
    TextureDescriptor,
)
from texzero.domain.outcome import Mismatch
from texzero.domain.types import InitializedState, ReadMethod
from texzero.oracle.values import (
    depth_value,
    expected_texel_load,
    state_components,
    stencil_value,
)
from texzero.texture.formats import decode_texel, encode_texel
from texzero.texture.layout import get_texture_copy_layout, unpack_texture_data
from texzero.texture.subresource import SubresourceRange

if TYPE_CHECKING:
    from texzero.oracle.oracle import ZeroInitOracle
    from texzero.protocols import CommandEncoder, Device, Texture

CheckContents = Callable[
    ["ZeroInitOracle", "Texture", InitializedState, SubresourceRange], list[Mismatch]
]

# Tolerance for float texel loads; both states are exactly representable
_FLOAT_ATOL = 1e-6


def submit_and_wait(device: Device, encoder: CommandEncoder) -> None:
    device.queue.submit([encoder.finish()])
    device.queue.on_submitted_work_done()


def read_subresource(
    device: Device,
    texture: Texture,
    level: int,
    slice: int,
    extent: Extent3D,
    aspect: str,
    bytes_per_texel: int,
) -> np.ndarray:
    """Copy one subresource into a buffer and return its texels.

    Returns:
        uint8 array of shape ``(depth, height, width, bytes_per_texel)`` with
        the row padding of the copy layout removed.
    """
    layout = get_texture_copy_layout(bytes_per_texel, extent)
    buffer = device.create_buffer(layout.byte_length, BufferUsage.COPY_DST | BufferUsage.MAP_READ)
    try:
        encoder = device.create_command_encoder()
        encoder.copy_texture_to_buffer(
            ImageCopyTexture(texture, mip_level=level, origin=(0, 0, slice), aspect=aspect),
            ImageCopyBuffer(buffer, layout.bytes_per_row, layout.rows_per_image),
            extent,
        )
        submit_and_wait(device, encoder)
        data = buffer.map_read()
    finally:
        buffer.destroy()
    return unpack_texture_data(data, layout, extent).copy()


def _compare_bytes(
    oracle: ZeroInitOracle,
    level: int,
    slice: int,
    state: InitializedState,
    texels: np.ndarray,
    expected: np.ndarray,
) -> Mismatch | None:
    flat = texels.reshape(-1, expected.size)
    differs = np.any(flat != expected, axis=1)
    if not differs.any():
        return None
    index = int(np.argmax(differs))
    actual = flat[index].tobytes()
    return oracle.mismatch(
        level,
        slice,
        state,
        expected=expected.tobytes().hex(),
        actual=actual.hex(),
        texel_index=index,
        actual_components=decode_texel(oracle.format_info, actual, oracle.copy_aspect),
    )


def _expected_bytes(oracle: ZeroInitOracle, state: InitializedState) -> np.ndarray:
    info = oracle.format_info
    texel = encode_texel(info, state_components(info, state), oracle.copy_aspect)
    return np.frombuffer(texel, dtype=np.uint8)


# =============================================================================
# Copies
# =============================================================================


def check_contents_by_buffer_copy(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
) -> list[Mismatch]:
    expected = _expected_bytes(oracle, state)
    mismatches = []
    for level, slice in subresource_range.each():
        texels = read_subresource(
            oracle.device,
            texture,
            level,
            slice,
            oracle.subresource_extent(level),
            oracle.aspect,
            expected.size,
        )
        mismatch = _compare_bytes(oracle, level, slice, state, texels, expected)
        if mismatch is not None:
            mismatches.append(mismatch)
    return mismatches


def check_contents_by_texture_copy(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
) -> list[Mismatch]:
    """Copy each subresource into a fresh texture, then read that one back."""
    device = oracle.device
    expected = _expected_bytes(oracle, state)
    mismatches = []
    for level, slice in subresource_range.each():
        extent = oracle.subresource_extent(level)
        destination = device.create_texture(
            TextureDescriptor(
                size=extent,
                format=oracle.format,
                usage=TextureUsage.COPY_DST | TextureUsage.COPY_SRC,
                dimension=oracle.dimension,
            )
        )
        try:
            encoder = device.create_command_encoder()
            encoder.copy_texture_to_texture(
                ImageCopyTexture(texture, mip_level=level, origin=(0, 0, slice), aspect=oracle.aspect),
                ImageCopyTexture(destination, aspect=oracle.aspect),
                extent,
            )
            submit_and_wait(device, encoder)
            texels = read_subresource(device, destination, 0, 0, extent, oracle.aspect, expected.size)
        finally:
            destination.destroy()
        mismatch = _compare_bytes(oracle, level, slice, state, texels, expected)
        if mismatch is not None:
            mismatches.append(mismatch)
    return mismatches


# =============================================================================
# Texel loads
# =============================================================================


def _load_dtype(oracle: ZeroInitOracle) -> str:
    aspect = oracle.copy_aspect
    if aspect == "stencil":
        return "<u4"
    if aspect == "depth":
        return "<f4"
    return {"uint": "<u4", "sint": "<i4"}.get(oracle.format_info.sample_type, "<f4")


def _check_by_texel_load(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
    binding: str,
) -> list[Mismatch]:
    device = oracle.device
    expected = np.array(expected_texel_load(oracle.format_info, oracle.copy_aspect, state))
    dtype = _load_dtype(oracle)
    sample_count = oracle.sample_count if binding == "sampled" else 1
    mismatches = []
    for level, slice in subresource_range.each():
        width, height, depth = oracle.subresource_extent(level)
        size = width * height * depth * 16
        view = texture.create_view(oracle.single_view(level, slice, oracle.dimension))
        for sample_index in range(sample_count):
            with ExitStack() as resources:
                output = device.create_buffer(size, BufferUsage.STORAGE | BufferUsage.COPY_SRC)
                resources.callback(output.destroy)
                staging = device.create_buffer(size, BufferUsage.COPY_DST | BufferUsage.MAP_READ)
                resources.callback(staging.destroy)
                encoder = device.create_command_encoder()
                compute = encoder.begin_compute_pass()
                compute.dispatch_texel_load(
                    TexelLoadDescriptor(view, binding, output, sample_index=sample_index)  # type: ignore[arg-type]
                )
                compute.end()
                encoder.copy_buffer_to_buffer(output, 0, staging, 0, size)
                submit_and_wait(device, encoder)
                data = staging.map_read()

            values = np.frombuffer(data, dtype=dtype).reshape(-1, 4).astype(np.float64)
            matches = np.isclose(values, expected, rtol=0.0, atol=_FLOAT_ATOL).all(axis=1)
            if not matches.all():
                index = int(np.argmin(matches))
                mismatches.append(
                    oracle.mismatch(
                        level,
                        slice,
                        state,
                        expected=tuple(expected.tolist()),
                        actual=tuple(values[index].tolist()),
                        texel_index=index,
                    )
                )
                break
    return mismatches


def check_contents_by_sampling(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
) -> list[Mismatch]:
    return _check_by_texel_load(oracle, texture, state, subresource_range, "sampled")


def check_contents_by_storage_read(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
) -> list[Mismatch]:
    return _check_by_texel_load(oracle, texture, state, subresource_range, "storage")


# =============================================================================
# Render passes
# =============================================================================


def _check_by_ds_test(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
    draw: DrawDescriptor,
) -> list[Mismatch]:
    """Draw over each subresource and count the fragments passing ``draw``'s test.

    Passing fragments write 1.0 to an r8unorm target cleared to 0, so every
    texel of the target must read 0xFF.
    """
    device = oracle.device
    mismatches = []
    for level, slice in subresource_range.each():
        width, height, _ = oracle.subresource_extent(level)
        with ExitStack() as resources:
            target = device.create_texture(
                TextureDescriptor(
                    size=(width, height, 1),
                    format="r8unorm",
                    usage=TextureUsage.RENDER_ATTACHMENT | TextureUsage.COPY_SRC,
                )
            )
            resources.callback(target.destroy)
            multisampled = None
            if oracle.sample_count > 1:
                multisampled = device.create_texture(
                    TextureDescriptor(
                        size=(width, height, 1),
                        format="r8unorm",
                        usage=TextureUsage.RENDER_ATTACHMENT,
                        sample_count=oracle.sample_count,
                    )
                )
                resources.callback(multisampled.destroy)

            color = ColorAttachment(
                view=(multisampled or target).create_view(),
                load_op="clear",
                store_op="store",
                resolve_target=target.create_view() if multisampled is not None else None,
            )
            depth_stencil = DepthStencilAttachment(
                view=texture.create_view(oracle.single_view(level, slice)),
                depth_load_op="load",
                depth_store_op="store",
                stencil_load_op="load",
                stencil_store_op="store",
            )
            encoder = device.create_command_encoder()
            render = encoder.begin_render_pass(
                RenderPassDescriptor(color_attachments=(color,), depth_stencil_attachment=depth_stencil)
            )
            render.draw(draw)
            render.end()
            submit_and_wait(device, encoder)
            texels = read_subresource(device, target, 0, 0, (width, height, 1), "all", 1)

        passed = texels.reshape(-1) == 0xFF
        if not passed.all():
            mismatches.append(
                oracle.mismatch(
                    level,
                    slice,
                    state,
                    expected=int(passed.size),
                    actual=int(np.count_nonzero(passed)),
                    texel_index=int(np.argmin(passed)),
                )
            )
    return mismatches


def check_contents_by_depth_test(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
) -> list[Mismatch]:
    draw = DrawDescriptor(depth=depth_value(state), depth_compare="equal")
    return _check_by_ds_test(oracle, texture, state, subresource_range, draw)


def check_contents_by_stencil_test(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
) -> list[Mismatch]:
    draw = DrawDescriptor(stencil_compare="equal", stencil_reference=stencil_value(state))
    return _check_by_ds_test(oracle, texture, state, subresource_range, draw)


def check_contents_by_color_blending(
    oracle: ZeroInitOracle,
    texture: Texture,
    state: InitializedState,
    subresource_range: SubresourceRange,
) -> list[Mismatch]:
    """Load each subresource as a colour attachment and blend zero onto it.

    Blending reads the stored value, so the subresource is materialized by the
    render pass itself; the result is then copied out and compared.
    """
    device = oracle.device
    expected = _expected_bytes(oracle, state)
    mismatches = []
    for level, slice in subresource_range.each():
        attachment = ColorAttachment(
            view=texture.create_view(oracle.single_view(level, slice)),
            load_op="load",
            store_op="store",
        )
        encoder = device.create_command_encoder()
        render = encoder.begin_render_pass(RenderPassDescriptor(color_attachments=(attachment,)))
        render.draw(DrawDescriptor(color=(0.0, 0.0, 0.0, 0.0), blend="add"))
        render.end()
        submit_and_wait(device, encoder)

        texels = read_subresource(
            device, texture, level, slice, oracle.subresource_extent(level), oracle.aspect, expected.size
        )
        mismatch = _compare_bytes(oracle, level, slice, state, texels, expected)
        if mismatch is not None:
            mismatches.append(mismatch)
    return mismatches


CHECK_CONTENTS: dict[ReadMethod, CheckContents] = {
    ReadMethod.SAMPLE: check_contents_by_sampling,
    ReadMethod.COPY_TO_BUFFER: check_contents_by_buffer_copy,
    ReadMethod.COPY_TO_TEXTURE: check_contents_by_texture_copy,
    ReadMethod.DEPTH_TEST: check_contents_by_depth_test,
    ReadMethod.STENCIL_TEST: check_contents_by_stencil_test,
    ReadMethod.COLOR_BLENDING: check_contents_by_color_blending,
    ReadMethod.STORAGE: check_contents_by_storage_read,
}

"""Drives one zero-initialization case against a device.

A case creates a texture, optionally writes canary values to its control
subresources, leaves (or makes, via a discarding store op) the remaining
subresources uninitialized, then reads everything back with the case's read
method: uninitialized subresources must read as zero and controls must still
hold the canary.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from loguru import logger

from texzero.constants import TEXTURE_3D_DEPTH, BufferUsage
from texzero.device.descriptors import (
    ColorAttachment,
    DepthStencilAttachment,
    ImageCopyBuffer,
    ImageCopyTexture,
    RenderPassDescriptor,
    TextureDescriptor,
    TextureViewDescriptor,
)
from texzero.domain.outcome import CaseOutcome, Mismatch
from texzero.domain.types import (
    InitializedState,
    ReadMethod,
    TextureAspect,
    TextureDimension,
    UninitializeMethod,
)
from texzero.exceptions import MatrixDefinitionError, VerificationError
from texzero.oracle.checks import CHECK_CONTENTS, submit_and_wait
from texzero.oracle.matrix import UNINITIALIZED_LAYER_RANGES, UNINITIALIZED_MIP_RANGES
from texzero.oracle.state import CasePhase, CaseState
from texzero.oracle.usage import required_texture_usage
from texzero.oracle.values import (
    depth_value,
    state_clear_color,
    state_components,
    stencil_value,
)
from texzero.params.builder import CaseParams
from texzero.protocols import Device, Texture
from texzero.resilience import destroy_quietly
from texzero.texture.formats import Aspect, encode_texel, get_format_info
from texzero.texture.layout import (
    Extent3D,
    fill_texture_data,
    get_texture_copy_layout,
    virtual_mip_size,
)
from texzero.texture.subresource import SubresourceRange


class ZeroInitOracle:
    """Initialize / uninitialize / verify phases of one case.

    Args:
        device: Device the case runs on.
        params: Axis values of the case. Missing subcase axes take their
            simplest value (``aspect="all"``, one sample, one layer, ...).
        uninitialized_ranges: Subresources to leave uninitialized instead of
            the standard partition for the case's mip and layer counts. Every
            other subresource becomes a control.

    Raises:
        MatrixDefinitionError: No standard partition exists for the case's
            mip or layer count and no explicit ranges were given.
    """

    def __init__(
        self,
        device: Device,
        params: Mapping[str, Any],
        uninitialized_ranges: Sequence[SubresourceRange] | None = None,
    ):
        if not isinstance(params, CaseParams):
            params = CaseParams(params)
        self.device = device
        self.params = params
        self.dimension = TextureDimension(params["dimension"])
        self.read_method = ReadMethod(params["read_method"])
        self.format: str = params["format"]
        self.format_info = get_format_info(self.format)
        self.aspect = TextureAspect(params.get("aspect", TextureAspect.ALL))
        self.mip_level_count = int(params["mip_level_count"])
        self.sample_count = int(params.get("sample_count", 1))
        self.uninitialize_method = UninitializeMethod(
            params.get("uninitialize_method", UninitializeMethod.CREATION)
        )
        self.layer_count = int(params.get("layer_count", 1))
        self.non_power_of_two = bool(params.get("non_power_of_two", False))
        self.canary_on_creation = bool(params.get("canary_on_creation", False))

        if uninitialized_ranges is None:
            uninitialized_ranges = self._standard_partition()
        self._uninitialized = tuple(uninitialized_ranges)

        self.state = CaseState(case_id=params.case_id)
        self.texture: Texture | None = None

    def _standard_partition(self) -> list[SubresourceRange]:
        try:
            mip_ranges = UNINITIALIZED_MIP_RANGES[self.mip_level_count]
            layer_ranges = UNINITIALIZED_LAYER_RANGES[self.layer_count]
        except KeyError:
            raise MatrixDefinitionError(
                "No standard uninitialized partition for "
                f"(mip_level_count={self.mip_level_count}, layer_count={self.layer_count}); "
                "pass uninitialized_ranges explicitly"
            ) from None
        return [SubresourceRange(m, layer) for m in mip_ranges for layer in layer_ranges]

    # ------------------------------------------------------------------
    # Texture geometry
    # ------------------------------------------------------------------

    @property
    def texture_width(self) -> int:
        width = 1 << self.mip_level_count
        if self.non_power_of_two:
            width = 2 * width - 1
        return width

    @property
    def texture_height(self) -> int:
        height = 1 << self.mip_level_count
        if self.non_power_of_two:
            height = 2 * height - 1
        return height

    @property
    def texture_depth(self) -> int:
        return TEXTURE_3D_DEPTH if self.dimension == TextureDimension.D3 else 1

    @property
    def texture_depth_or_array_layers(self) -> int:
        return self.layer_count if self.dimension == TextureDimension.D2 else self.texture_depth

    @property
    def array_layer_count(self) -> int:
        return self.layer_count if self.dimension == TextureDimension.D2 else 1

    def subresource_extent(self, level: int) -> Extent3D:
        """Extent of one subresource: a single layer in 2d, the whole mip in 3d."""
        return virtual_mip_size(
            self.dimension, (self.texture_width, self.texture_height, self.texture_depth), level
        )

    @property
    def copy_aspect(self) -> Aspect:
        """The single aspect the case reads and writes."""
        if self.aspect == TextureAspect.DEPTH_ONLY:
            return "depth"
        if self.aspect == TextureAspect.STENCIL_ONLY:
            return "stencil"
        return self.format_info.aspects[0]

    @property
    def required_features(self) -> frozenset[str]:
        feature = self.format_info.feature
        return frozenset({feature}) if feature else frozenset()

    def single_view(self, level: int, slice: int, dimension: str = "2d") -> TextureViewDescriptor:
        return TextureViewDescriptor(
            dimension=dimension,
            aspect=self.aspect,
            base_mip_level=level,
            mip_level_count=1,
            base_array_layer=slice,
            array_layer_count=1,
        )

    # ------------------------------------------------------------------
    # Partition
    # ------------------------------------------------------------------

    def iterate_uninitialized_subresources(self) -> Iterator[SubresourceRange]:
        """Ranges checked for zero-initialization."""
        yield from self._uninitialized

    def iterate_initialized_subresources(self) -> Iterator[SubresourceRange]:
        """Every other subresource, one at a time, in level-major order.

        These are the controls: zeroing the uninitialized ranges must not
        touch them.
        """
        uninitialized = {sub for r in self._uninitialized for sub in r.each()}
        for level in range(self.mip_level_count):
            for slice in range(self.array_layer_count):
                if (level, slice) not in uninitialized:
                    yield SubresourceRange.single(level, slice)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def create_texture(self) -> Texture:
        usage = required_texture_usage(
            self.format, self.sample_count, self.uninitialize_method, self.read_method
        )
        self.texture = self.device.create_texture(
            TextureDescriptor(
                size=(self.texture_width, self.texture_height, self.texture_depth_or_array_layers),
                format=self.format,
                usage=usage,
                dimension=self.dimension,
                mip_level_count=self.mip_level_count,
                sample_count=self.sample_count,
            )
        )
        return self.texture

    def _require_texture(self) -> Texture:
        if self.texture is None:
            raise RuntimeError("create_texture() must be called first")
        return self.texture

    def initialize_texture(self, state: InitializedState, subresource_range: SubresourceRange) -> None:
        """Write ``state`` to every subresource of ``subresource_range``.

        Uploads from a buffer where the format allows it; multisampled
        textures and formats that cannot be copy destinations are cleared by
        a render pass instead.
        """
        if self.sample_count > 1 or not self.format_info.copy_dst:
            self.initialize_with_store_op(state, subresource_range)
        else:
            self.initialize_with_copy(state, subresource_range)

    def initialize_with_copy(self, state: InitializedState, subresource_range: SubresourceRange) -> None:
        texture = self._require_texture()
        first = next(subresource_range.each(), None)
        if first is None:
            return

        info = self.format_info
        texel = encode_texel(info, state_components(info, state), self.copy_aspect)
        # Sized for the largest mip in the range; smaller mips reuse its layout
        largest = self.subresource_extent(first.level)
        layout = get_texture_copy_layout(len(texel), largest)
        buffer = self.device.create_buffer(
            layout.byte_length, BufferUsage.COPY_SRC, fill_texture_data(texel, layout, largest)
        )
        try:
            encoder = self.device.create_command_encoder()
            for level, slice in subresource_range.each():
                encoder.copy_buffer_to_texture(
                    ImageCopyBuffer(buffer, layout.bytes_per_row, layout.rows_per_image),
                    ImageCopyTexture(texture, mip_level=level, origin=(0, 0, slice), aspect=self.aspect),
                    self.subresource_extent(level),
                )
            submit_and_wait(self.device, encoder)
        finally:
            buffer.destroy()

    def initialize_with_store_op(
        self, state: InitializedState, subresource_range: SubresourceRange
    ) -> None:
        texture = self._require_texture()
        encoder = self.device.create_command_encoder()
        for level, slice in subresource_range.each():
            view = texture.create_view(self.single_view(level, slice))
            if self.format_info.color:
                descriptor = RenderPassDescriptor(
                    color_attachments=(
                        ColorAttachment(
                            view=view,
                            load_op="clear",
                            store_op="store",
                            clear_value=state_clear_color(self.format_info, state),
                        ),
                    )
                )
            else:
                descriptor = RenderPassDescriptor(
                    depth_stencil_attachment=DepthStencilAttachment(
                        view=view,
                        depth_load_op="clear",
                        depth_store_op="store",
                        depth_clear_value=depth_value(state),
                        stencil_load_op="clear",
                        stencil_store_op="store",
                        stencil_clear_value=stencil_value(state),
                    )
                )
            encoder.begin_render_pass(descriptor).end()
        submit_and_wait(self.device, encoder)

    def discard_texture(self, subresource_range: SubresourceRange) -> None:
        """Render to each subresource with a discarding store op."""
        texture = self._require_texture()
        encoder = self.device.create_command_encoder()
        for level, slice in subresource_range.each():
            view = texture.create_view(self.single_view(level, slice))
            if self.format_info.color:
                descriptor = RenderPassDescriptor(
                    color_attachments=(ColorAttachment(view=view, load_op="load", store_op="discard"),)
                )
            else:
                descriptor = RenderPassDescriptor(
                    depth_stencil_attachment=DepthStencilAttachment(
                        view=view,
                        depth_load_op="load",
                        depth_store_op="discard",
                        stencil_load_op="load",
                        stencil_store_op="discard",
                    )
                )
            encoder.begin_render_pass(descriptor).end()
        submit_and_wait(self.device, encoder)

    def prepare(self) -> None:
        """Create the texture and bring it to the UNINITIALIZED phase."""
        if self.texture is None:
            self.create_texture()

        if self.canary_on_creation:
            self.state.transition_to(CasePhase.PRE_INITIALIZED)
            for subresource_range in self.iterate_initialized_subresources():
                self.initialize_texture(InitializedState.CANARY, subresource_range)

        if self.uninitialize_method is UninitializeMethod.STORE_OP_CLEAR:
            for subresource_range in self.iterate_uninitialized_subresources():
                self.initialize_texture(InitializedState.CANARY, subresource_range)
            for subresource_range in self.iterate_uninitialized_subresources():
                self.discard_texture(subresource_range)

        self.state.transition_to(CasePhase.UNINITIALIZED)

    def check_contents(
        self, state: InitializedState, subresource_range: SubresourceRange
    ) -> list[Mismatch]:
        check = CHECK_CONTENTS[self.read_method]
        return check(self, self._require_texture(), state, subresource_range)

    def verify(self, strict: bool = False) -> list[Mismatch]:
        """Read every range back and compare against its expected state.

        Uninitialized ranges are checked first; controls are checked only when
        canaries were written. May be called repeatedly.

        Args:
            strict: Raise instead of returning a non-empty list.

        Returns:
            Mismatches, empty when the implementation behaves.

        Raises:
            VerificationError: ``strict`` and at least one mismatch.
            InvalidStateTransitionError: Called before ``prepare()``.
        """
        self.state.transition_to(CasePhase.VERIFIED)
        mismatches: list[Mismatch] = []
        for subresource_range in self.iterate_uninitialized_subresources():
            mismatches.extend(self.check_contents(InitializedState.ZERO, subresource_range))
        if self.canary_on_creation:
            for subresource_range in self.iterate_initialized_subresources():
                mismatches.extend(self.check_contents(InitializedState.CANARY, subresource_range))

        if mismatches:
            logger.debug("{}: {} mismatch(es)", self.state.case_id, len(mismatches))
            if strict:
                raise VerificationError(mismatches)
        return mismatches

    def destroy(self) -> None:
        if self.texture is not None:
            self.texture.destroy()
            self.texture = None
        if self.state.phase is not CasePhase.DISCARDED:
            self.state.transition_to(CasePhase.DISCARDED)

    def run(self) -> CaseOutcome:
        """Run the whole case. The texture is destroyed whatever happens.

        Device errors propagate; the runner turns them into skips or failures.
        """
        start = time.perf_counter()
        try:
            self.prepare()
            mismatches = self.verify()
        finally:
            destroy_quietly(self)
        duration = time.perf_counter() - start

        if mismatches:
            return CaseOutcome(
                case_id=self.state.case_id,
                status="fail",
                reason=str(VerificationError(mismatches)),
                mismatches=mismatches,
                duration_sec=duration,
            )
        return CaseOutcome(case_id=self.state.case_id, status="pass", duration_sec=duration)

    def mismatch(
        self,
        level: int,
        slice: int,
        state: InitializedState,
        *,
        expected: Any,
        actual: Any,
        texel_index: int | None = None,
        actual_components: dict[str, float] | None = None,
    ) -> Mismatch:
        return Mismatch(
            level=level,
            slice=slice,
            read_method=self.read_method.value,
            expected_state=state.value,
            expected=expected,
            actual=actual,
            texel_index=texel_index,
            actual_components=actual_components,
        )


"""Tests for the zero-initialization oracle driving the simulated device."""

import numpy as np
import pytest

from texzero.device.simulated import SimulatedDevice
from texzero.domain.types import (
    InitializedState,
    ReadMethod,
    TextureAspect,
    TextureDimension,
    UninitializeMethod,
)
from texzero.exceptions import (
    DeviceOutOfMemoryError,
    DeviceValidationError,
    InvalidStateTransitionError,
    MatrixDefinitionError,
    VerificationError,
)
from texzero.oracle.checks import CHECK_CONTENTS, read_subresource
from texzero.oracle.oracle import ZeroInitOracle
from texzero.oracle.state import CasePhase
from texzero.oracle.values import state_components
from texzero.texture.formats import decode_texel, encode_texel, get_format_info
from texzero.texture.subresource import Range, SubresourceRange
from tests.conftest import make_params

STORE_OP_CLEAR = UninitializeMethod.STORE_OP_CLEAR


def _read(oracle, level, slice):
    info = oracle.format_info
    return read_subresource(
        oracle.device,
        oracle.texture,
        level,
        slice,
        oracle.subresource_extent(level),
        oracle.aspect,
        info.bytes_per_texel(oracle.copy_aspect),
    )


class TestGeometry:
    def test_power_of_two(self, device):
        oracle = ZeroInitOracle(device, make_params(mip_level_count=5))
        assert (oracle.texture_width, oracle.texture_height) == (32, 32)
        assert oracle.subresource_extent(4) == (2, 2, 1)

    def test_non_power_of_two(self, device):
        oracle = ZeroInitOracle(device, make_params(mip_level_count=5, non_power_of_two=True))
        assert oracle.texture_width == 63
        assert oracle.subresource_extent(1) == (31, 31, 1)

    def test_3d_depth(self, device):
        oracle = ZeroInitOracle(device, make_params(dimension=TextureDimension.D3, mip_level_count=5))
        assert oracle.texture_depth_or_array_layers == 11
        assert oracle.array_layer_count == 1
        assert oracle.subresource_extent(1) == (16, 16, 5)

    def test_2d_layers(self, device):
        oracle = ZeroInitOracle(device, make_params(layer_count=7))
        assert oracle.texture_depth_or_array_layers == 7
        assert oracle.subresource_extent(0) == (2, 2, 1)

    def test_copy_aspect(self, device):
        assert ZeroInitOracle(device, make_params()).copy_aspect == "color"
        stencil = make_params(format="depth24plus-stencil8", aspect=TextureAspect.STENCIL_ONLY)
        assert ZeroInitOracle(device, stencil).copy_aspect == "stencil"
        assert ZeroInitOracle(device, make_params(format="depth16unorm")).copy_aspect == "depth"

    def test_required_features(self, device):
        params = make_params(format="depth32float-stencil8", aspect=TextureAspect.DEPTH_ONLY)
        assert ZeroInitOracle(device, params).required_features == frozenset({"depth32float-stencil8"})
        assert ZeroInitOracle(device, make_params()).required_features == frozenset()

    def test_accepts_plain_mapping(self, device):
        oracle = ZeroInitOracle(
            device, {"dimension": "2d", "read_method": "CopyToBuffer", "format": "r8unorm", "mip_level_count": 1}
        )
        assert oracle.layer_count == 1
        assert oracle.aspect == TextureAspect.ALL
        assert oracle.state.case_id == "dimension=2d;read_method=CopyToBuffer;format=r8unorm;mip_level_count=1"


class TestPartition:
    def test_single_subresource(self, device):
        oracle = ZeroInitOracle(device, make_params())
        assert list(oracle.iterate_uninitialized_subresources()) == [SubresourceRange.single(0, 0)]
        assert list(oracle.iterate_initialized_subresources()) == []

    def test_standard_partition(self, device):
        oracle = ZeroInitOracle(device, make_params(mip_level_count=5, layer_count=7))
        uninitialized = list(oracle.iterate_uninitialized_subresources())
        assert len(uninitialized) == 4
        covered = {sub for r in uninitialized for sub in r.each()}
        assert len(covered) == (2 + 1) * (2 + 1)
        controls = list(oracle.iterate_initialized_subresources())
        assert len(controls) == 5 * 7 - len(covered)
        assert all(len(r) == 1 for r in controls)

    def test_controls_are_level_major(self, device):
        oracle = ZeroInitOracle(device, make_params(mip_level_count=5))
        controls = [next(r.each()) for r in oracle.iterate_initialized_subresources()]
        assert controls == [(2, 0), (4, 0)]

    def test_partition_is_repeatable(self, device):
        oracle = ZeroInitOracle(device, make_params(mip_level_count=5, layer_count=7))
        assert list(oracle.iterate_initialized_subresources()) == list(
            oracle.iterate_initialized_subresources()
        )

    def test_unknown_counts_need_explicit_ranges(self, device):
        with pytest.raises(MatrixDefinitionError, match="mip_level_count=2"):
            ZeroInitOracle(device, make_params(mip_level_count=2))

    def test_explicit_ranges(self, device):
        ranges = [SubresourceRange(Range(1, 2), Range(0, 1))]
        oracle = ZeroInitOracle(device, make_params(mip_level_count=2), ranges)
        assert [next(r.each()) for r in oracle.iterate_initialized_subresources()] == [(0, 0)]


class TestLifecycle:
    def test_phases(self, device):
        oracle = ZeroInitOracle(device, make_params(canary_on_creation=True, mip_level_count=5))
        assert oracle.state.phase == CasePhase.BUILT
        oracle.prepare()
        assert oracle.state.phase == CasePhase.UNINITIALIZED
        oracle.verify()
        assert oracle.state.phase == CasePhase.VERIFIED
        oracle.destroy()
        assert oracle.state.phase == CasePhase.DISCARDED
        assert oracle.texture is None

    def test_verify_is_idempotent(self, device):
        oracle = ZeroInitOracle(device, make_params(mip_level_count=5, layer_count=7, canary_on_creation=True))
        oracle.prepare()
        assert oracle.verify() == []
        assert oracle.verify() == []
        assert oracle.state.phase == CasePhase.VERIFIED

    def test_verify_before_prepare(self, device):
        oracle = ZeroInitOracle(device, make_params())
        oracle.create_texture()
        with pytest.raises(InvalidStateTransitionError):
            oracle.verify()

    def test_initialize_before_create(self, device):
        oracle = ZeroInitOracle(device, make_params())
        with pytest.raises(RuntimeError, match="create_texture"):
            oracle.initialize_texture(InitializedState.CANARY, SubresourceRange.single(0, 0))

    def test_destroy_twice(self, device):
        oracle = ZeroInitOracle(device, make_params())
        oracle.prepare()
        oracle.destroy()
        oracle.destroy()
        assert oracle.state.phase == CasePhase.DISCARDED

    def test_run_releases_everything(self, device):
        outcome = ZeroInitOracle(
            device, make_params(mip_level_count=5, layer_count=7, canary_on_creation=True)
        ).run()
        assert outcome.passed
        device.reclaim()
        assert device.allocated_bytes == 0


class TestScenarios:
    def test_never_written_texture_reads_zero(self, device):
        oracle = ZeroInitOracle(device, make_params())
        oracle.prepare()
        texels = _read(oracle, 0, 0)
        assert texels.size == 2 * 2 * 4
        assert not texels.any()
        assert oracle.verify() == []

    def test_explicit_ranges_with_canaries(self, device):
        ranges = [
            SubresourceRange(Range(0, 2), Range(2, 4)),
            SubresourceRange(Range(3, 4), Range(6, 7)),
        ]
        params = make_params(mip_level_count=5, layer_count=7, canary_on_creation=True)
        oracle = ZeroInitOracle(device, params, ranges)
        assert len(list(oracle.iterate_initialized_subresources())) == 30
        oracle.prepare()
        assert oracle.verify() == []
        assert (_read(oracle, 4, 0) == 0xFF).all()
        assert (_read(oracle, 3, 5) == 0xFF).all()
        assert not _read(oracle, 3, 6).any()

    def test_store_op_clear_discards_canary(self, device):
        oracle = ZeroInitOracle(device, make_params(uninitialize_method=STORE_OP_CLEAR))
        oracle.prepare()
        assert device.command_log.count("render_pass") == 1
        assert "copy_buffer_to_texture" in device.command_log
        assert oracle.verify() == []

    def test_store_op_clear_with_fault(self):
        device = SimulatedDevice(faults={"discard_keeps_contents"})
        oracle = ZeroInitOracle(device, make_params(uninitialize_method=STORE_OP_CLEAR))
        oracle.prepare()
        [mismatch] = oracle.verify()
        assert mismatch.expected_state == "zero"
        assert mismatch.expected == "00000000"
        assert mismatch.actual == "ffffffff"
        assert mismatch.texel_index == 0

    def test_depth_canary_written_by_render_pass(self, device):
        params = make_params(
            format="depth32float",
            read_method=ReadMethod.DEPTH_TEST,
            layer_count=7,
            canary_on_creation=True,
        )
        oracle = ZeroInitOracle(device, params)
        oracle.prepare()
        assert "render_pass" in device.command_log
        assert "copy_buffer_to_texture" not in device.command_log
        assert oracle.verify() == []

    @pytest.mark.parametrize("fmt", ["rgba8unorm", "depth16unorm", "r16sint", "stencil8"])
    def test_copy_and_store_op_initialize_alike(self, fmt):
        def initialized_with(method_name):
            device = SimulatedDevice()
            oracle = ZeroInitOracle(
                device, make_params(format=fmt, uninitialize_method=STORE_OP_CLEAR)
            )
            oracle.create_texture()
            getattr(oracle, method_name)(InitializedState.CANARY, SubresourceRange.single(0, 0))
            return _read(oracle, 0, 0)

        by_copy = initialized_with("initialize_with_copy")
        by_store_op = initialized_with("initialize_with_store_op")
        assert np.array_equal(by_copy, by_store_op)
        assert by_copy.any()

    def test_render_clear_depth_matches_copy_encoding(self):
        canary = state_components(get_format_info("depth32float"), InitializedState.CANARY)

        device = SimulatedDevice()
        oracle = ZeroInitOracle(
            device, make_params(format="depth32float", uninitialize_method=STORE_OP_CLEAR)
        )
        oracle.create_texture()
        with pytest.raises(DeviceValidationError, match="not a buffer copy destination"):
            oracle.initialize_with_copy(InitializedState.CANARY, SubresourceRange.single(0, 0))
        oracle.initialize_texture(InitializedState.CANARY, SubresourceRange.single(0, 0))
        assert "copy_buffer_to_texture" not in device.command_log
        by_render_clear = _read(oracle, 0, 0).reshape(-1, 4)

        # The bytes a buffer upload would have written
        uploaded = encode_texel(oracle.format_info, canary, "depth")
        assert all(texel.tobytes() == uploaded for texel in by_render_clear)

        copy_oracle = ZeroInitOracle(
            SimulatedDevice(), make_params(format="depth16unorm", uninitialize_method=STORE_OP_CLEAR)
        )
        copy_oracle.create_texture()
        copy_oracle.initialize_with_copy(InitializedState.CANARY, SubresourceRange.single(0, 0))
        [by_copy] = {texel.tobytes() for texel in _read(copy_oracle, 0, 0).reshape(-1, 2)}

        cleared = decode_texel(oracle.format_info, by_render_clear[0].tobytes(), "depth")
        copied = decode_texel(copy_oracle.format_info, by_copy, "depth")
        assert cleared["Depth"] == pytest.approx(copied["Depth"], abs=1 / 0xFFFF)
        assert cleared["Depth"] == pytest.approx(canary["Depth"])


HEALTHY_CASES = [
    {"read_method": ReadMethod.SAMPLE},
    {"read_method": ReadMethod.SAMPLE, "format": "rg8sint", "mip_level_count": 5, "layer_count": 7, "canary_on_creation": True},
    {"read_method": ReadMethod.SAMPLE, "format": "r16float", "sample_count": 4, "canary_on_creation": True},
    {"read_method": ReadMethod.SAMPLE, "format": "rgba8uint", "dimension": TextureDimension.D3, "mip_level_count": 5, "canary_on_creation": True},
    {"read_method": ReadMethod.COPY_TO_BUFFER, "format": "rgba32float", "mip_level_count": 5, "non_power_of_two": True, "canary_on_creation": True},
    {"read_method": ReadMethod.COPY_TO_BUFFER, "format": "depth16unorm", "uninitialize_method": STORE_OP_CLEAR, "layer_count": 7, "canary_on_creation": True},
    {"read_method": ReadMethod.COPY_TO_BUFFER, "format": "stencil8", "layer_count": 7, "canary_on_creation": True},
    {"read_method": ReadMethod.COPY_TO_TEXTURE, "format": "r8unorm", "dimension": TextureDimension.D3, "mip_level_count": 5, "canary_on_creation": True},
    {"read_method": ReadMethod.COPY_TO_TEXTURE, "format": "bgra8unorm", "uninitialize_method": STORE_OP_CLEAR, "mip_level_count": 5, "layer_count": 7, "canary_on_creation": True},
    {"read_method": ReadMethod.DEPTH_TEST, "format": "depth24plus", "mip_level_count": 5, "canary_on_creation": True},
    {"read_method": ReadMethod.DEPTH_TEST, "format": "depth32float", "sample_count": 4},
    {"read_method": ReadMethod.DEPTH_TEST, "format": "depth24plus-stencil8", "aspect": TextureAspect.DEPTH_ONLY, "uninitialize_method": STORE_OP_CLEAR, "layer_count": 7, "canary_on_creation": True},
    {"read_method": ReadMethod.STENCIL_TEST, "format": "stencil8", "sample_count": 4},
    {"read_method": ReadMethod.STENCIL_TEST, "format": "depth24plus-stencil8", "aspect": TextureAspect.STENCIL_ONLY, "layer_count": 7, "canary_on_creation": True},
    {"read_method": ReadMethod.COLOR_BLENDING, "format": "rgba8unorm-srgb", "uninitialize_method": STORE_OP_CLEAR, "mip_level_count": 5, "canary_on_creation": True},
    {"read_method": ReadMethod.STORAGE, "format": "r32float", "dimension": TextureDimension.D3, "mip_level_count": 5, "canary_on_creation": True},
    {"read_method": ReadMethod.STORAGE, "format": "rgba16sint", "layer_count": 7, "canary_on_creation": True},
]


class TestReadMethods:
    def test_every_read_method_has_a_checker(self):
        assert set(CHECK_CONTENTS) == set(ReadMethod)

    @pytest.mark.parametrize("overrides", HEALTHY_CASES, ids=lambda o: make_params(**o).case_id)
    def test_conforming_device_passes(self, overrides):
        outcome = ZeroInitOracle(SimulatedDevice(), make_params(**overrides)).run()
        assert outcome.passed, outcome.reason
        assert outcome.mismatches == []

    @pytest.mark.parametrize(
        "read_method, fmt",
        [
            (ReadMethod.SAMPLE, "rgba8unorm"),
            (ReadMethod.COPY_TO_BUFFER, "r32uint"),
            (ReadMethod.COPY_TO_TEXTURE, "rg16float"),
            (ReadMethod.DEPTH_TEST, "depth32float"),
            (ReadMethod.STENCIL_TEST, "stencil8"),
            (ReadMethod.COLOR_BLENDING, "r8unorm"),
            (ReadMethod.STORAGE, "rgba8unorm"),
        ],
    )
    def test_missing_lazy_clear_detected(self, read_method, fmt):
        device = SimulatedDevice(faults={"no_lazy_clear"})
        outcome = ZeroInitOracle(device, make_params(read_method=read_method, format=fmt)).run()
        assert outcome.failed
        [mismatch] = outcome.mismatches
        assert (mismatch.level, mismatch.slice) == (0, 0)
        assert mismatch.read_method == read_method.value
        assert mismatch.expected_state == "zero"

    def test_depth_test_reports_fragment_counts(self):
        device = SimulatedDevice(faults={"no_lazy_clear"})
        params = make_params(read_method=ReadMethod.DEPTH_TEST, format="depth16unorm")
        [mismatch] = ZeroInitOracle(device, params).run().mismatches
        assert mismatch.expected == 4
        assert mismatch.actual == 0

    def test_texel_load_reports_components(self):
        device = SimulatedDevice(faults={"no_lazy_clear"})
        params = make_params(read_method=ReadMethod.SAMPLE, format="r8uint")
        [mismatch] = ZeroInitOracle(device, params).run().mismatches
        assert mismatch.expected == (0.0, 0.0, 0.0, 1.0)
        assert mismatch.actual == (171.0, 0.0, 0.0, 1.0)


class TestFaults:
    def test_recycled_bytes_reported(self):
        device = SimulatedDevice(faults={"no_lazy_clear"})
        oracle = ZeroInitOracle(device, make_params())
        oracle.prepare()
        [mismatch] = oracle.verify()
        assert mismatch.actual == "abababab"
        assert "texel=0" in mismatch.describe()

    def test_clearing_whole_level_clobbers_controls(self):
        device = SimulatedDevice(faults={"clear_whole_level"})
        oracle = ZeroInitOracle(device, make_params(layer_count=7, canary_on_creation=True))
        oracle.prepare()
        mismatches = oracle.verify()
        assert [(m.level, m.slice) for m in mismatches] == [(0, 0), (0, 1), (0, 4), (0, 5)]
        assert all(m.expected_state == "canary" for m in mismatches)
        assert all(m.expected == "ffffffff" and m.actual == "00000000" for m in mismatches)

    def test_controls_not_checked_without_canaries(self):
        device = SimulatedDevice(faults={"clear_whole_level"})
        oracle = ZeroInitOracle(device, make_params(layer_count=7))
        oracle.prepare()
        assert oracle.verify() == []

    def test_strict_verify_raises(self):
        device = SimulatedDevice(faults={"no_lazy_clear"})
        oracle = ZeroInitOracle(device, make_params(layer_count=7))
        oracle.prepare()
        with pytest.raises(VerificationError, match="3 subresource") as exc_info:
            oracle.verify(strict=True)
        assert len(exc_info.value.mismatches) == 3

    def test_failed_run_outcome(self):
        device = SimulatedDevice(faults={"no_lazy_clear"})
        outcome = ZeroInitOracle(device, make_params()).run()
        assert outcome.failed
        assert outcome.reason.startswith("1 subresource(s) mismatched")
        assert outcome.case_id == make_params().case_id

    def test_mismatch_decodes_observed_texel(self):
        device = SimulatedDevice(faults={"no_lazy_clear"})
        oracle = ZeroInitOracle(device, make_params(format="r8uint"))
        oracle.prepare()
        [mismatch] = oracle.verify()
        assert mismatch.actual == "ab"
        assert mismatch.actual_components == {"R": 171.0}
        assert "{'R': 171.0}" in mismatch.describe()


class TestOutOfMemoryCleanup:
    @pytest.mark.parametrize(
        ("overrides", "memory_limit_bytes"),
        [
            # texture 16 B, first readback buffer 64 B, second one does not fit
            ({"read_method": ReadMethod.SAMPLE}, 100),
            ({"read_method": ReadMethod.STORAGE}, 100),
            # texture 64 B, resolve target 4 B, multisampled target does not fit
            ({"read_method": ReadMethod.DEPTH_TEST, "format": "depth32float", "sample_count": 4}, 70),
        ],
    )
    def test_partial_allocations_released(self, overrides, memory_limit_bytes):
        device = SimulatedDevice(memory_limit_bytes=memory_limit_bytes)
        oracle = ZeroInitOracle(device, make_params(**overrides))
        with pytest.raises(DeviceOutOfMemoryError):
            oracle.run()
        assert oracle.state.phase == CasePhase.DISCARDED
        device.reclaim()
        assert device.allocated_bytes == 0

    def test_texture_allocation_failure(self):
        device = SimulatedDevice(memory_limit_bytes=8)
        oracle = ZeroInitOracle(device, make_params())
        with pytest.raises(DeviceOutOfMemoryError):
            oracle.run()
        assert oracle.texture is None
        assert device.allocated_bytes == 0

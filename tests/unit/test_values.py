"""Tests for the logical values of the ZERO and CANARY states."""

from texzero.domain.types import InitializedState
from texzero.oracle.values import (
    color_value,
    depth_value,
    expected_texel_load,
    state_clear_color,
    state_components,
    stencil_value,
)
from texzero.texture.formats import get_format_info, quantize_depth

ZERO = InitializedState.ZERO
CANARY = InitializedState.CANARY


class TestStateValues:
    def test_zero_is_zero_everywhere(self):
        for name in ("r8unorm", "r32uint", "rg8sint"):
            assert color_value(get_format_info(name), ZERO) == 0
        assert depth_value(ZERO) == 0.0
        assert stencil_value(ZERO) == 0

    def test_canary_per_sample_type(self):
        assert color_value(get_format_info("rgba8unorm"), CANARY) == 1.0
        assert color_value(get_format_info("r32uint"), CANARY) == 1
        assert color_value(get_format_info("rg8sint"), CANARY) == -1

    def test_components(self):
        components = state_components(get_format_info("r8uint"), CANARY)
        assert components == {"R": 1, "G": 1, "B": 1, "A": 1, "Depth": 0.8, "Stencil": 42}

    def test_clear_color(self):
        assert state_clear_color(get_format_info("r16float"), CANARY) == (1.0, 1.0, 1.0, 1.0)


class TestExpectedTexelLoad:
    def test_missing_channels(self):
        assert expected_texel_load(get_format_info("rg8unorm"), "color", CANARY) == (1.0, 1.0, 0.0, 1.0)
        assert expected_texel_load(get_format_info("r8unorm"), "color", ZERO) == (0.0, 0.0, 0.0, 1.0)

    def test_depth_is_quantized(self):
        info = get_format_info("depth16unorm")
        assert expected_texel_load(info, "depth", CANARY) == (quantize_depth(info, 0.8), 0.0, 0.0, 1.0)

    def test_stencil(self):
        assert expected_texel_load(get_format_info("stencil8"), "stencil", CANARY) == (42.0, 0.0, 0.0, 1.0)

"""Logical channel values of the ZERO and CANARY states."""

from __future__ import annotations

from texzero.constants import (
    CANARY_DEPTH,
    CANARY_FLOAT,
    CANARY_SINT,
    CANARY_STENCIL,
    CANARY_UINT,
)
from texzero.domain.types import InitializedState
from texzero.texture.formats import RGBA, Aspect, FormatInfo, quantize_depth

# Value a texel load returns for channels the format does not store
_MISSING_CHANNEL = {"R": 0.0, "G": 0.0, "B": 0.0, "A": 1.0}


def color_value(info: FormatInfo, state: InitializedState) -> float:
    if state is InitializedState.ZERO:
        return 0.0
    if info.sample_type == "uint":
        return CANARY_UINT
    if info.sample_type == "sint":
        return CANARY_SINT
    return CANARY_FLOAT


def depth_value(state: InitializedState) -> float:
    return CANARY_DEPTH if state is InitializedState.CANARY else 0.0


def stencil_value(state: InitializedState) -> int:
    return CANARY_STENCIL if state is InitializedState.CANARY else 0


def state_components(info: FormatInfo, state: InitializedState) -> dict[str, float]:
    """Per-channel values of ``state``, keyed R, G, B, A, Depth, Stencil."""
    value = color_value(info, state)
    return {
        **{channel: value for channel in RGBA},
        "Depth": depth_value(state),
        "Stencil": stencil_value(state),
    }


def state_clear_color(info: FormatInfo, state: InitializedState) -> tuple[float, float, float, float]:
    value = color_value(info, state)
    return (value, value, value, value)


def expected_texel_load(
    info: FormatInfo, aspect: Aspect, state: InitializedState
) -> tuple[float, float, float, float]:
    """The four components a texel load of ``aspect`` returns in ``state``."""
    if aspect == "depth":
        return (quantize_depth(info, depth_value(state)), 0.0, 0.0, 1.0)
    if aspect == "stencil":
        return (float(stencil_value(state)), 0.0, 0.0, 1.0)
    value = color_value(info, state)
    r, g, b, a = (value if c in info.channels else _MISSING_CHANNEL[c] for c in RGBA)
    return (r, g, b, a)

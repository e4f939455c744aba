"""Texture format capability table and texel encoding.

Each uncompressed format the oracle exercises is described by a
``FormatInfo``: which channels it stores (colour, depth, stencil), what the
device may do with it (render, blend, buffer copies, storage binding,
multisampling) and how a logical per-channel value is laid out in memory.

Packed formats (rgb10a2unorm, rg11b10ufloat, rgb9e5ufloat) and compressed
formats are not described here.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

import numpy as np

ComponentType = Literal["unorm", "unorm-srgb", "snorm", "uint", "sint", "float"]
DepthType = Literal["unorm16", "unorm24", "float32"]
Aspect = Literal["color", "depth", "stencil"]
SampleType = Literal["float", "uint", "sint", "depth", "stencil"]

# Shader-visible component order
RGBA = ("R", "G", "B", "A")

_COMPONENT_DTYPES: dict[tuple[str, int], str] = {
    ("unorm", 8): "u1",
    ("unorm-srgb", 8): "u1",
    ("snorm", 8): "i1",
    ("uint", 8): "u1",
    ("sint", 8): "i1",
    ("uint", 16): "<u2",
    ("sint", 16): "<i2",
    ("float", 16): "<f2",
    ("uint", 32): "<u4",
    ("sint", 32): "<i4",
    ("float", 32): "<f4",
}


@dataclass(frozen=True)
class FormatInfo:
    """Capabilities and memory layout of one texture format."""

    name: str
    channels: tuple[str, ...] = ()  # colour channels in memory order
    component_type: ComponentType | None = None
    component_bits: int = 0
    depth_type: DepthType | None = None
    stencil: bool = False
    renderable: bool = False
    blendable: bool = False
    copy_src: bool = True
    copy_dst: bool = True
    storage: bool = False
    multisample: bool = False
    feature: str | None = None

    @property
    def color(self) -> bool:
        return bool(self.channels)

    @property
    def depth(self) -> bool:
        return self.depth_type is not None

    @property
    def aspects(self) -> tuple[Aspect, ...]:
        if self.color:
            return ("color",)
        aspects: list[Aspect] = []
        if self.depth:
            aspects.append("depth")
        if self.stencil:
            aspects.append("stencil")
        return tuple(aspects)

    @property
    def sample_type(self) -> SampleType:
        if self.component_type in ("uint", "sint"):
            return self.component_type
        if self.color:
            return "float"
        return "depth" if self.depth else "stencil"

    def bytes_per_texel(self, aspect: Aspect = "color") -> int:
        """Size of one texel of ``aspect`` in a buffer copy."""
        if aspect == "color":
            return len(self.channels) * self.component_bits // 8
        if aspect == "stencil":
            return 1
        if self.depth_type == "unorm16":
            return 2
        return 4


def _color(
    name: str,
    channels: str,
    component_type: ComponentType,
    bits: int,
    *,
    renderable: bool = True,
    blendable: bool = False,
    storage: bool = False,
    multisample: bool = True,
) -> FormatInfo:
    return FormatInfo(
        name=name,
        channels=tuple(channels),
        component_type=component_type,
        component_bits=bits,
        renderable=renderable,
        blendable=blendable,
        storage=storage,
        multisample=multisample and renderable,
    )


_FORMATS: tuple[FormatInfo, ...] = (
    # 8 bits per texel
    _color("r8unorm", "R", "unorm", 8, blendable=True),
    _color("r8snorm", "R", "snorm", 8, renderable=False),
    _color("r8uint", "R", "uint", 8),
    _color("r8sint", "R", "sint", 8),
    # 16 bits per texel
    _color("r16uint", "R", "uint", 16),
    _color("r16sint", "R", "sint", 16),
    _color("r16float", "R", "float", 16, blendable=True),
    _color("rg8unorm", "RG", "unorm", 8, blendable=True),
    _color("rg8snorm", "RG", "snorm", 8, renderable=False),
    _color("rg8uint", "RG", "uint", 8),
    _color("rg8sint", "RG", "sint", 8),
    # 32 bits per texel
    _color("r32uint", "R", "uint", 32, storage=True, multisample=False),
    _color("r32sint", "R", "sint", 32, storage=True, multisample=False),
    _color("r32float", "R", "float", 32, storage=True),
    _color("rg16uint", "RG", "uint", 16),
    _color("rg16sint", "RG", "sint", 16),
    _color("rg16float", "RG", "float", 16, blendable=True),
    _color("rgba8unorm", "RGBA", "unorm", 8, blendable=True, storage=True),
    _color("rgba8unorm-srgb", "RGBA", "unorm-srgb", 8, blendable=True),
    _color("rgba8snorm", "RGBA", "snorm", 8, renderable=False, storage=True),
    _color("rgba8uint", "RGBA", "uint", 8, storage=True),
    _color("rgba8sint", "RGBA", "sint", 8, storage=True),
    _color("bgra8unorm", "BGRA", "unorm", 8, blendable=True),
    _color("bgra8unorm-srgb", "BGRA", "unorm-srgb", 8, blendable=True),
    # 64 bits per texel
    _color("rg32uint", "RG", "uint", 32, storage=True, multisample=False),
    _color("rg32sint", "RG", "sint", 32, storage=True, multisample=False),
    _color("rg32float", "RG", "float", 32, storage=True, multisample=False),
    _color("rgba16uint", "RGBA", "uint", 16, storage=True),
    _color("rgba16sint", "RGBA", "sint", 16, storage=True),
    _color("rgba16float", "RGBA", "float", 16, blendable=True, storage=True),
    # 128 bits per texel
    _color("rgba32uint", "RGBA", "uint", 32, storage=True, multisample=False),
    _color("rgba32sint", "RGBA", "sint", 32, storage=True, multisample=False),
    _color("rgba32float", "RGBA", "float", 32, storage=True, multisample=False),
    # Depth / stencil
    FormatInfo("stencil8", stencil=True, renderable=True, multisample=True),
    FormatInfo("depth16unorm", depth_type="unorm16", renderable=True, multisample=True),
    FormatInfo(
        "depth24plus",
        depth_type="unorm24",
        renderable=True,
        copy_src=False,
        copy_dst=False,
        multisample=True,
    ),
    FormatInfo(
        "depth24plus-stencil8",
        depth_type="unorm24",
        stencil=True,
        renderable=True,
        copy_src=False,
        copy_dst=False,
        multisample=True,
    ),
    FormatInfo("depth32float", depth_type="float32", renderable=True, copy_dst=False, multisample=True),
    FormatInfo(
        "depth32float-stencil8",
        depth_type="float32",
        stencil=True,
        renderable=True,
        copy_dst=False,
        multisample=True,
        feature="depth32float-stencil8",
    ),
)

FORMAT_INFO: dict[str, FormatInfo] = {info.name: info for info in _FORMATS}
UNCOMPRESSED_FORMATS: tuple[str, ...] = tuple(FORMAT_INFO)


def get_format_info(name: str) -> FormatInfo:
    try:
        return FORMAT_INFO[name]
    except KeyError:
        raise KeyError(f"Unknown texture format {name!r}") from None


# =============================================================================
# Component encoding
# =============================================================================


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _linear_to_srgb(value: float) -> float:
    if value <= 0.0031308:
        return value * 12.92
    return 1.055 * value ** (1 / 2.4) - 0.055


def _srgb_to_linear(value: float) -> float:
    if value <= 0.04045:
        return value / 12.92
    return ((value + 0.055) / 1.055) ** 2.4


def _encode_component(component_type: ComponentType, bits: int, value: float) -> float | int:
    if component_type == "unorm":
        return _round_half_up(min(max(value, 0.0), 1.0) * ((1 << bits) - 1))
    if component_type == "unorm-srgb":
        linear = min(max(value, 0.0), 1.0)
        return _round_half_up(_linear_to_srgb(linear) * ((1 << bits) - 1))
    if component_type == "snorm":
        return _round_half_up(min(max(value, -1.0), 1.0) * ((1 << (bits - 1)) - 1))
    if component_type in ("uint", "sint"):
        return int(value)
    return float(value)


def _decode_component(component_type: ComponentType, bits: int, raw: float | int) -> float:
    if component_type == "unorm":
        return raw / ((1 << bits) - 1)
    if component_type == "unorm-srgb":
        return _srgb_to_linear(raw / ((1 << bits) - 1))
    if component_type == "snorm":
        return max(raw / ((1 << (bits - 1)) - 1), -1.0)
    return raw


def quantize_depth(info: FormatInfo, value: float) -> float:
    """Round ``value`` to the precision the format stores depth at."""
    if info.depth_type == "unorm16":
        return _round_half_up(min(max(value, 0.0), 1.0) * 0xFFFF) / 0xFFFF
    if info.depth_type == "unorm24":
        return _round_half_up(min(max(value, 0.0), 1.0) * 0xFFFFFF) / 0xFFFFFF
    return float(np.float32(value))


def encode_texel(info: FormatInfo, components: Mapping[str, float], aspect: Aspect = "color") -> bytes:
    """Encode logical per-channel values into the format's native bytes.

    ``components`` is keyed by channel name (``R``, ``G``, ``B``, ``A``,
    ``Depth``, ``Stencil``); only the channels of ``aspect`` are read.

    Raises:
        ValueError: If the aspect has no defined byte layout (unorm24 depth).
    """
    if aspect == "stencil":
        return np.array([int(components["Stencil"])], dtype="u1").tobytes()
    if aspect == "depth":
        if info.depth_type == "unorm16":
            raw = _round_half_up(min(max(components["Depth"], 0.0), 1.0) * 0xFFFF)
            return np.array([raw], dtype="<u2").tobytes()
        if info.depth_type == "float32":
            return np.array([components["Depth"]], dtype="<f4").tobytes()
        raise ValueError(f"{info.name} depth has no defined byte layout")

    assert info.component_type is not None
    dtype = _COMPONENT_DTYPES[(info.component_type, info.component_bits)]
    values = [
        _encode_component(info.component_type, info.component_bits, components[channel])
        for channel in info.channels
    ]
    return np.array(values, dtype=dtype).tobytes()


def decode_texel(info: FormatInfo, data: bytes, aspect: Aspect = "color") -> dict[str, float]:
    """Inverse of ``encode_texel`` for one texel."""
    if aspect == "stencil":
        return {"Stencil": int(np.frombuffer(data, dtype="u1", count=1)[0])}
    if aspect == "depth":
        if info.depth_type == "unorm16":
            return {"Depth": int(np.frombuffer(data, dtype="<u2", count=1)[0]) / 0xFFFF}
        if info.depth_type == "float32":
            return {"Depth": float(np.frombuffer(data, dtype="<f4", count=1)[0])}
        raise ValueError(f"{info.name} depth has no defined byte layout")

    assert info.component_type is not None
    dtype = _COMPONENT_DTYPES[(info.component_type, info.component_bits)]
    raw = np.frombuffer(data, dtype=dtype, count=len(info.channels))
    return {
        channel: _decode_component(info.component_type, info.component_bits, raw[i].item())
        for i, channel in enumerate(info.channels)
    }


# =============================================================================
# Vectorized colour encoding (used by devices working on whole subresources)
# =============================================================================


def component_dtype(info: FormatInfo) -> np.dtype:
    assert info.component_type is not None
    return np.dtype(_COMPONENT_DTYPES[(info.component_type, info.component_bits)])


def decode_color_array(info: FormatInfo, texels: np.ndarray) -> np.ndarray:
    """Decode ``(..., bytes_per_texel)`` uint8 texels to ``(..., channels)`` floats."""
    assert info.component_type is not None
    raw = np.ascontiguousarray(texels, dtype=np.uint8).view(component_dtype(info))
    values = raw.astype(np.float64)
    max_unorm = float((1 << info.component_bits) - 1)
    if info.component_type == "unorm":
        return values / max_unorm
    if info.component_type == "unorm-srgb":
        srgb = values / max_unorm
        return np.where(srgb <= 0.04045, srgb / 12.92, ((srgb + 0.055) / 1.055) ** 2.4)
    if info.component_type == "snorm":
        return np.maximum(values / ((1 << (info.component_bits - 1)) - 1), -1.0)
    return values


def encode_color_array(info: FormatInfo, values: np.ndarray) -> np.ndarray:
    """Inverse of ``decode_color_array``: returns ``(..., bytes_per_texel)`` uint8."""
    assert info.component_type is not None
    dtype = component_dtype(info)
    max_unorm = float((1 << info.component_bits) - 1)
    if info.component_type == "unorm":
        raw = np.floor(np.clip(values, 0.0, 1.0) * max_unorm + 0.5)
    elif info.component_type == "unorm-srgb":
        linear = np.clip(values, 0.0, 1.0)
        srgb = np.where(linear <= 0.0031308, linear * 12.92, 1.055 * linear ** (1 / 2.4) - 0.055)
        raw = np.floor(srgb * max_unorm + 0.5)
    elif info.component_type == "snorm":
        max_snorm = float((1 << (info.component_bits - 1)) - 1)
        raw = np.floor(np.clip(values, -1.0, 1.0) * max_snorm + 0.5)
    else:
        raw = values
    return np.ascontiguousarray(raw.astype(dtype)).view(np.uint8)

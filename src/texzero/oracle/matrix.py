"""The zero-initialization test matrix.

Case axes are ``dimension``, ``read_method`` and ``format``; everything after
``begin_subcases()`` is a subcase axis. Exclusions are declared right after
the last axis they read, so invalid branches are pruned before later axes
multiply them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from texzero.constants import LAYER_COUNTS_2D, MIP_LEVEL_COUNTS, SAMPLE_COUNTS
from texzero.domain.types import (
    ReadMethod,
    TextureAspect,
    TextureDimension,
    UninitializeMethod,
)
from texzero.oracle.usage import lacks_required_capability
from texzero.params.builder import ParamsBuilder
from texzero.texture.formats import UNCOMPRESSED_FORMATS, get_format_info
from texzero.texture.subresource import Range

if TYPE_CHECKING:
    from texzero.config.models import MatrixConfig

# Mip ranges left uninitialized, per mip level count: the only mip, or a
# range plus a single mip.
UNINITIALIZED_MIP_RANGES: dict[int, tuple[Range, ...]] = {
    1: (Range(0, 1),),
    5: (Range(0, 2), Range(3, 4)),
}

# Layer ranges left uninitialized, per layer count
UNINITIALIZED_LAYER_RANGES: dict[int, tuple[Range, ...]] = {
    1: (Range(0, 1),),
    7: (Range(2, 4), Range(6, 7)),
}

_COPY_READS = frozenset({ReadMethod.COPY_TO_BUFFER, ReadMethod.COPY_TO_TEXTURE})

# Read methods that cannot observe a multisampled texture
_SINGLE_SAMPLE_READS = _COPY_READS | {ReadMethod.COLOR_BLENDING, ReadMethod.STORAGE}

# Depth formats whose depth aspect has no defined byte layout
_PACKED_DEPTH_FORMATS = frozenset({"depth24plus", "depth24plus-stencil8"})


def aspect_excluded(read_method: ReadMethod, format: str, aspect: TextureAspect) -> bool:
    info = get_format_info(format)
    return (
        (read_method == ReadMethod.DEPTH_TEST and (not info.depth or aspect == TextureAspect.STENCIL_ONLY))
        or (read_method == ReadMethod.STENCIL_TEST and (not info.stencil or aspect == TextureAspect.DEPTH_ONLY))
        or (read_method == ReadMethod.COLOR_BLENDING and not info.blendable)
        # Depth and stencil are not sampled
        or (read_method == ReadMethod.SAMPLE and not info.color)
        or (aspect == TextureAspect.DEPTH_ONLY and not info.depth)
        or (aspect == TextureAspect.STENCIL_ONLY and not info.stencil)
        or (aspect == TextureAspect.ALL and info.depth and info.stencil)
        or (read_method in _COPY_READS and format in _PACKED_DEPTH_FORMATS)
    )


def sample_count_excluded(format: str, read_method: ReadMethod, sample_count: int) -> bool:
    return sample_count > 1 and (
        read_method in _SINGLE_SAMPLE_READS or not get_format_info(format).multisample
    )


def excluded_in_3d(
    dimension: TextureDimension,
    read_method: ReadMethod,
    uninitialize_method: UninitializeMethod,
    format: str,
    sample_count: int,
) -> bool:
    """3d textures are colour-only, single-sampled and never render targets."""
    info = get_format_info(format)
    return dimension == TextureDimension.D3 and (
        sample_count > 1
        or info.depth
        or info.stencil
        or read_method in (ReadMethod.DEPTH_TEST, ReadMethod.STENCIL_TEST, ReadMethod.COLOR_BLENDING)
        or uninitialize_method == UninitializeMethod.STORE_OP_CLEAR
    )


def layer_counts(dimension: TextureDimension) -> tuple[int, ...]:
    return LAYER_COUNTS_2D if dimension == TextureDimension.D2 else (1,)


def can_initialize(format: str) -> bool:
    """Canary values can be written by a buffer upload or a render clear."""
    info = get_format_info(format)
    return info.copy_dst or info.renderable


def texture_zero_params(config: MatrixConfig | None = None) -> ParamsBuilder:
    """Build the full matrix, optionally restricted by ``config``."""
    dimensions = list(TextureDimension)
    read_methods = list(ReadMethod)
    formats: list[str] = list(UNCOMPRESSED_FORMATS)
    mip_level_counts = list(MIP_LEVEL_COUNTS)
    sample_counts = list(SAMPLE_COUNTS)
    non_power_of_two = [False, True]
    canary_on_creation = [False, True]
    if config is not None:
        dimensions = list(config.dimensions)
        read_methods = list(config.read_methods)
        formats = list(config.formats) if config.formats is not None else formats
        mip_level_counts = list(config.mip_level_counts)
        sample_counts = list(config.sample_counts)
        non_power_of_two = list(config.non_power_of_two)
        canary_on_creation = list(config.canary_on_creation)

    return (
        ParamsBuilder()
        .combine("dimension", dimensions)
        .combine("read_method", read_methods)
        .combine("format", formats)
        .begin_subcases()
        .combine("aspect", list(TextureAspect))
        .unless(aspect_excluded)
        .combine("mip_level_count", mip_level_counts)
        .combine("sample_count", sample_counts)
        .unless(sample_count_excluded)
        # Multisampled textures have a single mip
        .unless(lambda sample_count, mip_level_count: sample_count > 1 and mip_level_count > 1)
        .combine("uninitialize_method", list(UninitializeMethod))
        .unless(excluded_in_3d)
        .expand("layer_count", layer_counts)
        # Multisampled array textures are not supported
        .unless(lambda sample_count, layer_count: sample_count > 1 and layer_count > 1)
        .unless(lacks_required_capability)
        .combine("non_power_of_two", non_power_of_two)
        .combine("canary_on_creation", canary_on_creation)
        .filter(lambda canary_on_creation, format: not canary_on_creation or can_initialize(format))
    )

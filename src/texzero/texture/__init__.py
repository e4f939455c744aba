"""Texture coordinate model, format table and copy layouts."""

from texzero.texture.formats import (
    FORMAT_INFO,
    UNCOMPRESSED_FORMATS,
    FormatInfo,
    decode_texel,
    encode_texel,
    get_format_info,
    quantize_depth,
)
from texzero.texture.layout import get_texture_copy_layout, virtual_mip_size
from texzero.texture.subresource import (
    MipLevel,
    Range,
    Subresource,
    SubresourceRange,
    end_of,
)

__all__ = [
    "FORMAT_INFO",
    "UNCOMPRESSED_FORMATS",
    "FormatInfo",
    "MipLevel",
    "Range",
    "Subresource",
    "SubresourceRange",
    "decode_texel",
    "encode_texel",
    "end_of",
    "get_format_info",
    "get_texture_copy_layout",
    "quantize_depth",
    "virtual_mip_size",
]

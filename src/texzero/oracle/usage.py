"""Texture usage a case needs for its uninitialize and read methods."""

from __future__ import annotations

from texzero.constants import TextureUsage
from texzero.domain.types import ReadMethod, UninitializeMethod
from texzero.texture.formats import get_format_info

_READ_USAGE: dict[ReadMethod, TextureUsage] = {
    ReadMethod.COPY_TO_BUFFER: TextureUsage.COPY_SRC,
    ReadMethod.COPY_TO_TEXTURE: TextureUsage.COPY_SRC,
    ReadMethod.SAMPLE: TextureUsage.TEXTURE_BINDING,
    ReadMethod.STORAGE: TextureUsage.STORAGE_BINDING,
    ReadMethod.DEPTH_TEST: TextureUsage.RENDER_ATTACHMENT,
    ReadMethod.STENCIL_TEST: TextureUsage.RENDER_ATTACHMENT,
    # Blended in place, then copied out
    ReadMethod.COLOR_BLENDING: TextureUsage.RENDER_ATTACHMENT | TextureUsage.COPY_SRC,
}


def required_texture_usage(
    format: str,
    sample_count: int,
    uninitialize_method: UninitializeMethod | str,
    read_method: ReadMethod | str,
) -> TextureUsage:
    """Usage flags the case's texture must be created with.

    COPY_DST is always present so canary values can be uploaded.
    RENDER_ATTACHMENT is added whenever canaries must be written by a render
    pass instead: multisampled textures and formats that are not buffer copy
    destinations.
    """
    usage = TextureUsage.COPY_DST

    if UninitializeMethod(uninitialize_method) is UninitializeMethod.STORE_OP_CLEAR:
        usage |= TextureUsage.RENDER_ATTACHMENT

    usage |= _READ_USAGE[ReadMethod(read_method)]

    if sample_count > 1:
        usage |= TextureUsage.RENDER_ATTACHMENT

    if not get_format_info(format).copy_dst:
        usage |= TextureUsage.RENDER_ATTACHMENT

    return usage


def lacks_required_capability(
    format: str,
    sample_count: int,
    uninitialize_method: UninitializeMethod | str,
    read_method: ReadMethod | str,
) -> bool:
    """True when the format cannot support the usage the case needs."""
    usage = required_texture_usage(format, sample_count, uninitialize_method, read_method)
    info = get_format_info(format)
    return bool(
        (usage & TextureUsage.RENDER_ATTACHMENT and not info.renderable)
        or (usage & TextureUsage.STORAGE_BINDING and not info.storage)
    )

"""Enumerations naming the axes of the zero-initialization matrix."""

from __future__ import annotations

import sys
from enum import Enum

if sys.version_info >= (3, 11):
    from enum import StrEnum
else:

    class StrEnum(str, Enum):
        """Backport of StrEnum for Python < 3.11."""

        def __str__(self) -> str:
            return str(self.value)


class TextureDimension(StrEnum):
    D2 = "2d"
    D3 = "3d"


class TextureAspect(StrEnum):
    ALL = "all"
    DEPTH_ONLY = "depth-only"
    STENCIL_ONLY = "stencil-only"


class UninitializeMethod(StrEnum):
    """How the subresources under test end up uninitialized."""

    CREATION = "Creation"  # never written since the texture was created
    STORE_OP_CLEAR = "StoreOpClear"  # canary written, then a render pass discards it


class ReadMethod(StrEnum):
    """How the oracle observes texture contents."""

    SAMPLE = "Sample"
    COPY_TO_BUFFER = "CopyToBuffer"
    COPY_TO_TEXTURE = "CopyToTexture"
    DEPTH_TEST = "DepthTest"
    STENCIL_TEST = "StencilTest"
    COLOR_BLENDING = "ColorBlending"
    STORAGE = "Storage"


class InitializedState(Enum):
    """Logical content of a subresource.

    CANARY is written on control subresources and must survive untouched.
    ZERO is what every uninitialized subresource must read back as.
    """

    ZERO = "zero"
    CANARY = "canary"

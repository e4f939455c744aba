"""Constants for texzero."""

import os
from enum import IntFlag
from pathlib import Path


class TextureUsage(IntFlag):
    """Texture usage bits, values as defined by the WebGPU constants."""

    COPY_SRC = 0x01
    COPY_DST = 0x02
    TEXTURE_BINDING = 0x04
    STORAGE_BINDING = 0x08
    RENDER_ATTACHMENT = 0x10


class BufferUsage(IntFlag):
    """Buffer usage bits."""

    MAP_READ = 0x0001
    MAP_WRITE = 0x0002
    COPY_SRC = 0x0004
    COPY_DST = 0x0008
    STORAGE = 0x0080


# Buffer <-> texture copies must use a bytes_per_row that is a multiple of this
BYTES_PER_ROW_ALIGNMENT = 256

# Depth of every 3d texture created by the oracle
TEXTURE_3D_DEPTH = 11

# Matrix axes values
MIP_LEVEL_COUNTS = (1, 5)
SAMPLE_COUNTS = (1, 4)
LAYER_COUNTS_2D = (1, 7)

# Canary encodings per channel kind (zero is 0 everywhere)
CANARY_FLOAT = 1.0
CANARY_UINT = 1
CANARY_SINT = -1
CANARY_DEPTH = 0.8
CANARY_STENCIL = 42

# Byte pattern the simulated device leaves in freshly allocated memory
RECYCLED_MEMORY_BYTE = 0xAB

# Simulated device memory budget when no config sets device.memory_limit_mb
DEFAULT_MEMORY_LIMIT_MB = int(os.environ.get("TEXZERO_MEMORY_LIMIT_MB", "256"))

# User config location override (default: platformdirs user config dir)
CONFIG_PATH_ENV_VAR = "TEXZERO_CONFIG"
DEFAULT_CONFIG_FILENAME = "config.yaml"
LOCAL_ENV_FILE = Path(".env")

"""Configuration subsystem for texzero.

Public API:
- RunConfig / MatrixConfig / DeviceConfig: validated configuration models
- load_run_config: Load from YAML with env var and CLI override support
- get_user_config_path: Return the user config path
"""

from texzero.config.loader import deep_merge, get_user_config_path, load_run_config
from texzero.config.models import DeviceConfig, MatrixConfig, RunConfig

__all__ = [
    "DeviceConfig",
    "MatrixConfig",
    "RunConfig",
    "deep_merge",
    "get_user_config_path",
    "load_run_config",
]

"""YAML configuration loader for texzero runs.

Precedence (low → high):
  built-in defaults < user config file < explicit config file
  < TEXZERO_* env vars < CLI overrides

The user config file lives in the platformdirs user config directory
(``~/.config/texzero/config.yaml`` on Linux) unless TEXZERO_CONFIG points
elsewhere. A missing user config file is not an error; a missing explicit
file is.
"""

from __future__ import annotations

import contextlib
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_dir
from pydantic import ValidationError

from texzero.config.models import RunConfig
from texzero.constants import CONFIG_PATH_ENV_VAR, DEFAULT_CONFIG_FILENAME
from texzero.exceptions import ConfigError

logger = logging.getLogger(__name__)

__all__ = ["deep_merge", "get_user_config_path", "load_run_config"]

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


# =============================================================================
# Public API
# =============================================================================


def get_user_config_path() -> Path:
    """Return the user config path, honouring TEXZERO_CONFIG."""
    if override := os.environ.get(CONFIG_PATH_ENV_VAR):
        return Path(override).expanduser()
    return Path(user_config_dir("texzero")) / DEFAULT_CONFIG_FILENAME


def load_run_config(
    path: Path | str | None = None,
    cli_overrides: dict[str, Any] | None = None,
    user_config_path: Path | None = None,
) -> RunConfig:
    """Load and validate run configuration.

    Args:
        path: Explicit YAML config file. None = user config and defaults only.
        cli_overrides: Highest-priority values. Keys may be dotted
            (``"device.memory_limit_mb"``); None values are ignored.
        user_config_path: User config file override (for testing).

    Returns:
        Validated RunConfig.

    Raises:
        ConfigError: Missing explicit file, YAML parse error, non-mapping
            document, or schema validation failure.
    """
    merged: dict[str, Any] = {}

    user_path = user_config_path or get_user_config_path()
    if user_path.exists():
        logger.debug("Loading user config from %s", user_path)
        merged = deep_merge(merged, _load_file(user_path))

    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        merged = deep_merge(merged, _load_file(path))

    merged = deep_merge(merged, _env_overrides())

    if cli_overrides:
        overrides = {k: v for k, v in cli_overrides.items() if v is not None}
        merged = deep_merge(merged, _unflatten(overrides))

    try:
        return RunConfig.model_validate(merged)
    except ValidationError as e:
        errors = [f"  {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        source = f" {path}" if path is not None else ""
        raise ConfigError(f"Invalid config{source}:\n" + "\n".join(errors)) from e


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with overlay taking precedence.

    Args:
        base: Base dictionary.
        overlay: Dictionary to overlay on base.

    Returns:
        Merged dictionary (new object, originals unchanged).
    """
    result = deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)
    return result


# =============================================================================
# Private helpers
# =============================================================================


def _load_file(path: Path) -> dict[str, Any]:
    try:
        result = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(result, dict):
        raise ConfigError(f"Config must be a mapping (got {type(result).__name__}): {path}")
    return result


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_overrides() -> dict[str, Any]:
    """Collect TEXZERO_* environment overrides as a nested dict.

    Unparseable numeric values are ignored.
    """
    overrides: dict[str, Any] = {}
    device: dict[str, Any] = {}

    if val := os.environ.get("TEXZERO_FAIL_FAST"):
        overrides["fail_fast"] = val.lower() in _TRUE_VALUES
    if val := os.environ.get("TEXZERO_MAX_CASES"):
        with contextlib.suppress(ValueError):
            overrides["max_cases"] = int(val)
    if val := os.environ.get("TEXZERO_VERBOSITY"):
        overrides["verbosity"] = val.lower()
    if val := os.environ.get("TEXZERO_MEMORY_LIMIT_MB"):
        with contextlib.suppress(ValueError):
            device["memory_limit_mb"] = int(val)
    if val := os.environ.get("TEXZERO_FEATURES"):
        device["features"] = _split_list(val)
    if val := os.environ.get("TEXZERO_FAULTS"):
        device["faults"] = _split_list(val)

    if device:
        overrides["device"] = device
    return overrides


def _unflatten(flat: dict[str, Any]) -> dict[str, Any]:
    """Turn ``{"device.faults": [...]}`` into ``{"device": {"faults": [...]}}``."""
    result: dict[str, Any] = {}
    for key, value in flat.items():
        parts = key.split(".")
        node = result
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
    return result

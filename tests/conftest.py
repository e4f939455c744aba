"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import Any

import pytest
from loguru import logger

from texzero.device.simulated import SimulatedDevice, SimulatedDevicePool
from texzero.domain.types import (
    ReadMethod,
    TextureAspect,
    TextureDimension,
    UninitializeMethod,
)
from texzero.params.builder import CaseParams

CASE_KEYS = ("dimension", "read_method", "format")


def make_params(**overrides: Any) -> CaseParams:
    """Build the simplest valid case, with any axis overridden.

    Defaults: 2d rgba8unorm, read by buffer copy, one mip, one sample,
    one layer, uninitialized since creation, no canaries.
    """
    values: dict[str, Any] = {
        "dimension": TextureDimension.D2,
        "read_method": ReadMethod.COPY_TO_BUFFER,
        "format": "rgba8unorm",
        "aspect": TextureAspect.ALL,
        "mip_level_count": 1,
        "sample_count": 1,
        "uninitialize_method": UninitializeMethod.CREATION,
        "layer_count": 1,
        "non_power_of_two": False,
        "canary_on_creation": False,
    }
    values.update(overrides)
    return CaseParams(values, CASE_KEYS)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    """Keep TEXZERO_* variables and the user config file out of every test."""
    for var in (
        "TEXZERO_FAIL_FAST",
        "TEXZERO_MAX_CASES",
        "TEXZERO_VERBOSITY",
        "TEXZERO_MEMORY_LIMIT_MB",
        "TEXZERO_FEATURES",
        "TEXZERO_FAULTS",
        "TEXZERO_JSON_OUTPUT",
    ):
        monkeypatch.delenv(var, raising=False)
    user_dir = tmp_path_factory.mktemp("user-config")
    monkeypatch.setenv("TEXZERO_CONFIG", str(user_dir / "config.yaml"))


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger.remove()


@pytest.fixture
def device() -> SimulatedDevice:
    """Fresh simulated device with the default memory budget and no faults."""
    return SimulatedDevice()


@pytest.fixture
def pool() -> SimulatedDevicePool:
    return SimulatedDevicePool()

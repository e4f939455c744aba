"""Pydantic models for run configuration.

All models forbid unknown fields, so a typo in a config file is reported
instead of silently ignored.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from texzero.constants import DEFAULT_MEMORY_LIMIT_MB, MIP_LEVEL_COUNTS, SAMPLE_COUNTS
from texzero.device.simulated import KNOWN_FAULTS
from texzero.domain.types import ReadMethod, TextureDimension
from texzero.texture.formats import FORMAT_INFO

VerbosityType = Literal["quiet", "normal", "verbose"]


def _dedupe(values: list) -> list:
    return list(dict.fromkeys(values))


class MatrixConfig(BaseModel):
    """Restricts the values each matrix axis takes."""

    model_config = {"extra": "forbid"}

    dimensions: list[TextureDimension] = Field(
        default_factory=lambda: list(TextureDimension), min_length=1
    )
    read_methods: list[ReadMethod] = Field(default_factory=lambda: list(ReadMethod), min_length=1)
    formats: list[str] | None = Field(
        default=None, description="Formats to test (None = every uncompressed format)"
    )
    mip_level_counts: list[int] = Field(default_factory=lambda: list(MIP_LEVEL_COUNTS), min_length=1)
    sample_counts: list[int] = Field(default_factory=lambda: list(SAMPLE_COUNTS), min_length=1)
    non_power_of_two: list[bool] = Field(default_factory=lambda: [False, True], min_length=1)
    canary_on_creation: list[bool] = Field(default_factory=lambda: [False, True], min_length=1)

    @field_validator("formats")
    @classmethod
    def validate_formats(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        unknown = [f for f in v if f not in FORMAT_INFO]
        if unknown:
            raise ValueError(f"Unknown texture format(s): {', '.join(unknown)}")
        return _dedupe(v)

    @field_validator("mip_level_counts")
    @classmethod
    def validate_mip_level_counts(cls, v: list[int]) -> list[int]:
        # Each count needs a partition of uninitialized mip ranges
        invalid = [n for n in v if n not in MIP_LEVEL_COUNTS]
        if invalid:
            raise ValueError(f"mip_level_counts must be drawn from {list(MIP_LEVEL_COUNTS)}, got {invalid}")
        return _dedupe(v)

    @field_validator("sample_counts")
    @classmethod
    def validate_sample_counts(cls, v: list[int]) -> list[int]:
        invalid = [n for n in v if n not in SAMPLE_COUNTS]
        if invalid:
            raise ValueError(f"sample_counts must be drawn from {list(SAMPLE_COUNTS)}, got {invalid}")
        return _dedupe(v)

    @field_validator("dimensions", "read_methods", "non_power_of_two", "canary_on_creation")
    @classmethod
    def dedupe(cls, v: list) -> list:
        return _dedupe(v)


class DeviceConfig(BaseModel):
    """Simulated device settings."""

    model_config = {"extra": "forbid"}

    memory_limit_mb: int = Field(default=DEFAULT_MEMORY_LIMIT_MB, gt=0)
    features: list[str] = Field(default_factory=list, description="Optional device features")
    faults: list[str] = Field(default_factory=list, description="Injected implementation faults")

    @field_validator("faults")
    @classmethod
    def validate_faults(cls, v: list[str]) -> list[str]:
        unknown = sorted(set(v) - KNOWN_FAULTS)
        if unknown:
            raise ValueError(
                f"Unknown fault(s) {unknown}; known: {', '.join(sorted(KNOWN_FAULTS))}"
            )
        return v

    @property
    def memory_limit_bytes(self) -> int:
        return self.memory_limit_mb * 1024 * 1024


class RunConfig(BaseModel):
    """Top-level configuration of a run."""

    model_config = {"extra": "forbid"}

    matrix: MatrixConfig = Field(default_factory=MatrixConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    fail_fast: bool = Field(default=False, description="Stop after the first failing case")
    max_cases: int | None = Field(default=None, ge=1, description="Run at most this many cases")
    oom_retries: int = Field(default=1, ge=0, description="Retries after running out of device memory")
    reclaim_on_oom: bool = Field(default=True)
    verbosity: VerbosityType = Field(default="normal")

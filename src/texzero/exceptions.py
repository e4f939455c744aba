"""Exception hierarchy for texzero."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from texzero.domain.outcome import Mismatch


class TexZeroError(Exception):
    """Base exception for texzero."""


class ConfigError(TexZeroError):
    """Invalid or missing configuration."""


class MatrixDefinitionError(TexZeroError):
    """A test matrix stage references an axis that is not bound yet.

    Raised while the matrix is being declared. It is a defect in the matrix
    definition itself and aborts the whole run.
    """


class UnsupportedCapabilityError(TexZeroError):
    """The current device lacks a format, feature or usage the case needs."""


class DeviceOutOfMemoryError(UnsupportedCapabilityError):
    """The device could not allocate a resource for the case."""


class DeviceValidationError(TexZeroError):
    """The device rejected a command (bad usage, illegal copy, ...)."""


class VerificationError(TexZeroError):
    """Observed texture contents differ from the expected encoding."""

    def __init__(self, mismatches: list[Mismatch]):
        first = mismatches[0] if mismatches else None
        detail = f": first at {first.describe()}" if first is not None else ""
        super().__init__(f"{len(mismatches)} subresource(s) mismatched{detail}")
        self.mismatches = mismatches


class InvalidStateTransitionError(TexZeroError):
    """Invalid oracle phase transition."""

    def __init__(self, from_state: str, to_state: str):
        super().__init__(f"Invalid transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state

"""Domain types shared by the matrix, the oracle and the runner."""

from texzero.domain.outcome import CaseOutcome, CaseStatus, Mismatch, RunSummary
from texzero.domain.types import (
    InitializedState,
    ReadMethod,
    TextureAspect,
    TextureDimension,
    UninitializeMethod,
)

__all__ = [
    "CaseOutcome",
    "CaseStatus",
    "InitializedState",
    "Mismatch",
    "ReadMethod",
    "RunSummary",
    "TextureAspect",
    "TextureDimension",
    "UninitializeMethod",
]

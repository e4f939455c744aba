"""Per-case outcome and run summary models."""

from __future__ import annotations

from collections import Counter
from typing import Any, Literal

from pydantic import BaseModel, Field

CaseStatus = Literal["pass", "fail", "skip"]


class Mismatch(BaseModel):
    """One subresource whose observed contents differ from the expectation."""

    model_config = {"extra": "forbid", "frozen": True}

    level: int = Field(..., ge=0, description="Mip level of the subresource")
    slice: int = Field(..., ge=0, description="Array layer of the subresource")
    read_method: str = Field(..., description="Read method used to observe the contents")
    expected_state: Literal["zero", "canary"] = Field(..., description="Expected logical state")
    expected: Any = Field(..., description="Expected value (bytes, components or fragment count)")
    actual: Any = Field(..., description="First observed value that differed")
    texel_index: int | None = Field(
        default=None, description="Index of the first differing texel, if known"
    )
    actual_components: dict[str, float] | None = Field(
        default=None, description="Channel values decoded from the differing texel's bytes"
    )

    def describe(self) -> str:
        where = f"level={self.level} slice={self.slice}"
        texel = f" texel={self.texel_index}" if self.texel_index is not None else ""
        decoded = f" {self.actual_components}" if self.actual_components else ""
        return (
            f"{where}{texel} via {self.read_method}: expected {self.expected_state} "
            f"{self.expected!r}, got {self.actual!r}{decoded}"
        )


class CaseOutcome(BaseModel):
    """Result of running one generated case."""

    model_config = {"extra": "forbid"}

    case_id: str = Field(..., description="Stable key=value;... identifier of the case")
    status: CaseStatus
    reason: str | None = Field(default=None, description="Skip reason or failure summary")
    mismatches: list[Mismatch] = Field(default_factory=list)
    duration_sec: float = Field(default=0.0, ge=0.0)

    @property
    def passed(self) -> bool:
        return self.status == "pass"

    @property
    def failed(self) -> bool:
        return self.status == "fail"

    @property
    def skipped(self) -> bool:
        return self.status == "skip"


class RunSummary(BaseModel):
    """Counts over a sequence of case outcomes."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_outcomes(cls, outcomes: list[CaseOutcome]) -> RunSummary:
        statuses = Counter(o.status for o in outcomes)
        reasons = Counter(o.reason or "unspecified" for o in outcomes if o.skipped)
        return cls(
            total=len(outcomes),
            passed=statuses["pass"],
            failed=statuses["fail"],
            skipped=statuses["skip"],
            skip_reasons=dict(reasons),
        )

    @property
    def ok(self) -> bool:
        return self.failed == 0

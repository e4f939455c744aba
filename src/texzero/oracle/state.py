"""Lifecycle of one zero-initialization case.

    BUILT -> [PRE_INITIALIZED] -> UNINITIALIZED -> VERIFIED -> DISCARDED

PRE_INITIALIZED is entered only when control subresources receive canary
values. VERIFIED may be re-entered so verification can be repeated, and any
phase may move to DISCARDED once the texture is destroyed.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from texzero.exceptions import InvalidStateTransitionError


class CasePhase(str, Enum):
    BUILT = "built"
    PRE_INITIALIZED = "pre_initialized"
    UNINITIALIZED = "uninitialized"
    VERIFIED = "verified"
    DISCARDED = "discarded"


_VALID_TRANSITIONS: dict[CasePhase, frozenset[CasePhase]] = {
    CasePhase.BUILT: frozenset(
        {CasePhase.PRE_INITIALIZED, CasePhase.UNINITIALIZED, CasePhase.DISCARDED}
    ),
    CasePhase.PRE_INITIALIZED: frozenset({CasePhase.UNINITIALIZED, CasePhase.DISCARDED}),
    CasePhase.UNINITIALIZED: frozenset({CasePhase.VERIFIED, CasePhase.DISCARDED}),
    CasePhase.VERIFIED: frozenset({CasePhase.VERIFIED, CasePhase.DISCARDED}),
    CasePhase.DISCARDED: frozenset(),  # Terminal
}


class CaseState(BaseModel):
    """Current phase of a case, with guarded transitions."""

    model_config = {"extra": "forbid"}

    case_id: str = Field(..., description="Identifier of the case being driven")
    phase: CasePhase = Field(default=CasePhase.BUILT, description="Current lifecycle phase")

    def can_transition_to(self, new_phase: CasePhase) -> bool:
        return new_phase in _VALID_TRANSITIONS.get(self.phase, frozenset())

    def transition_to(self, new_phase: CasePhase) -> None:
        """Move to ``new_phase``.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed.
        """
        if not self.can_transition_to(new_phase):
            raise InvalidStateTransitionError(
                from_state=self.phase.value,
                to_state=new_phase.value,
            )
        self.phase = new_phase

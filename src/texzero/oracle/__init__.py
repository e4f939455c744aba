"""Zero-initialization oracle: usage rules, test matrix, checks and driver."""

from texzero.oracle.checks import CHECK_CONTENTS, read_subresource
from texzero.oracle.matrix import (
    UNINITIALIZED_LAYER_RANGES,
    UNINITIALIZED_MIP_RANGES,
    texture_zero_params,
)
from texzero.oracle.oracle import ZeroInitOracle
from texzero.oracle.state import CasePhase, CaseState
from texzero.oracle.usage import lacks_required_capability, required_texture_usage

__all__ = [
    "CHECK_CONTENTS",
    "UNINITIALIZED_LAYER_RANGES",
    "UNINITIALIZED_MIP_RANGES",
    "CasePhase",
    "CaseState",
    "ZeroInitOracle",
    "lacks_required_capability",
    "read_subresource",
    "required_texture_usage",
    "texture_zero_params",
]

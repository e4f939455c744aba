"""texzero: conformance oracle for texture zero-initialization.

Checks that every (mip level, array layer) subresource of a texture reads
back as zero until it is explicitly written, across formats, dimensions,
sample counts and read methods.

Public API:
- texture_zero_params: the declarative test matrix
- ZeroInitOracle: drives one case against a device
- run_case / run_cases / summarize: classify cases as pass, fail or skip
- SimulatedDevice / SimulatedDevicePool: in-memory reference device
"""

from texzero.device.simulated import SimulatedDevice, SimulatedDevicePool
from texzero.domain.outcome import CaseOutcome, Mismatch, RunSummary
from texzero.domain.types import (
    InitializedState,
    ReadMethod,
    TextureAspect,
    TextureDimension,
    UninitializeMethod,
)
from texzero.exceptions import (
    ConfigError,
    DeviceOutOfMemoryError,
    DeviceValidationError,
    InvalidStateTransitionError,
    MatrixDefinitionError,
    TexZeroError,
    UnsupportedCapabilityError,
    VerificationError,
)
from texzero.oracle.matrix import texture_zero_params
from texzero.oracle.oracle import ZeroInitOracle
from texzero.params.builder import CaseParams, ParamsBuilder
from texzero.runner import run_case, run_cases, summarize
from texzero.texture.subresource import Range, SubresourceRange, end_of

__version__ = "0.3.0"

__all__ = [
    "CaseOutcome",
    "CaseParams",
    "ConfigError",
    "DeviceOutOfMemoryError",
    "DeviceValidationError",
    "InitializedState",
    "InvalidStateTransitionError",
    "MatrixDefinitionError",
    "Mismatch",
    "ParamsBuilder",
    "Range",
    "ReadMethod",
    "RunSummary",
    "SimulatedDevice",
    "SimulatedDevicePool",
    "SubresourceRange",
    "TexZeroError",
    "TextureAspect",
    "TextureDimension",
    "UninitializeMethod",
    "UnsupportedCapabilityError",
    "VerificationError",
    "ZeroInitOracle",
    "__version__",
    "end_of",
    "run_case",
    "run_cases",
    "summarize",
]

"""Run logging for texzero, built on loguru.

What each verbosity shows:
- quiet: failing cases and device trouble (WARNING+)
- normal: skipped and failing cases plus the run summary (INFO+)
- verbose: every case, retry and device allocation (DEBUG+), each line
  tagged with the case id and attempt number it belongs to

Records logged inside ``case_context`` carry ``case_id`` and ``attempt`` in
their ``extra``; everything else carries the placeholders from
``RUN_EXTRA``.
"""

from __future__ import annotations

import os
import sys
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Literal

from loguru import logger

if TYPE_CHECKING:
    from texzero.domain.outcome import CaseOutcome, CaseStatus

__all__ = ["case_context", "log_outcome", "logger", "setup_logging"]

logger.remove()

# Defaults for records logged outside any case
RUN_EXTRA = {"case_id": "-", "attempt": "-"}
logger.configure(extra=RUN_EXTRA)

VERBOSE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[case_id]}</magenta> #{extra[attempt]} | "
    "<cyan>{name}</cyan> - "
    "<level>{message}</level>"
)

SIMPLE_FORMAT = "<level>{level: <8}</level> | <level>{message}</level>"

VerbosityType = Literal["quiet", "normal", "verbose"]

VERBOSITY_ENV_VAR = "TEXZERO_VERBOSITY"

_LEVELS: dict[str, str] = {"quiet": "WARNING", "normal": "INFO", "verbose": "DEBUG"}

# A pass is routine, a skip is worth a line, a failure is a conformance bug
OUTCOME_LEVELS: dict[CaseStatus, str] = {"pass": "DEBUG", "skip": "INFO", "fail": "WARNING"}

_OUTCOME_VERBS: dict[CaseStatus, str] = {"pass": "Passed", "skip": "Skipped", "fail": "Failed"}


def _get_verbosity_from_env() -> VerbosityType:
    env_value = os.environ.get(VERBOSITY_ENV_VAR, "normal").lower()
    if env_value in _LEVELS:
        return env_value  # type: ignore[return-value]
    return "normal"


def setup_logging(
    verbosity: VerbosityType | None = None,
    json_output: bool = False,
    log_file: str | None = None,
) -> None:
    """Route texzero's records to stderr and, optionally, a log file.

    Args:
        verbosity: "quiet", "normal" or "verbose". Read from
            TEXZERO_VERBOSITY when None.
        json_output: Emit one serialized JSON record per line, case fields
            included, instead of formatted text.
        log_file: Also write every record (DEBUG+, verbose format) here.
            The file rotates at 10 MB.
    """
    logger.remove()
    effective = verbosity or _get_verbosity_from_env()
    level = _LEVELS[effective]

    if json_output:
        logger.add(sys.stderr, format="{message}", serialize=True, level=level)
    else:
        log_format = VERBOSE_FORMAT if effective == "verbose" else SIMPLE_FORMAT
        logger.add(sys.stderr, format=log_format, level=level, colorize=True)

    if log_file:
        logger.add(log_file, format=VERBOSE_FORMAT, level="DEBUG", rotation="10 MB")


def case_context(case_id: str, attempt: int | None = None) -> AbstractContextManager[None]:
    """Tag every record logged inside the block with ``case_id`` (and ``attempt``).

    Contexts nest, and an inner one overrides only the fields it sets: the
    runner opens one per case and another per attempt.
    """
    fields: dict[str, object] = {"case_id": case_id}
    if attempt is not None:
        fields["attempt"] = attempt
    return logger.contextualize(**fields)


def log_outcome(outcome: CaseOutcome, attempts: int = 1) -> None:
    """Log a finished case at the level its status warrants."""
    if outcome.passed:
        detail = f" in {outcome.duration_sec:.3f}s"
    else:
        detail = f": {outcome.reason}"
    if attempts > 1:
        detail = f" after {attempts} attempts{detail}"
    logger.log(
        OUTCOME_LEVELS[outcome.status],
        "{} {}{}",
        _OUTCOME_VERBS[outcome.status],
        outcome.case_id,
        detail,
    )

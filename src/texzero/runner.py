"""Run generated cases and classify each as pass, fail or skip.

Capability problems (missing format feature, unsupported usage, device out of
memory) skip the case. Verification mismatches and commands the device
rejects fail it. Either way the next case still runs; only errors in the
matrix definition itself abort a run.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from loguru import logger

from texzero.domain.outcome import CaseOutcome, RunSummary
from texzero.exceptions import (
    DeviceOutOfMemoryError,
    DeviceValidationError,
    UnsupportedCapabilityError,
    VerificationError,
)
from texzero.logging import case_context, log_outcome
from texzero.oracle.oracle import ZeroInitOracle
from texzero.params.builder import CaseParams
from texzero.protocols import DevicePool
from texzero.resilience import reclaim_device_memory, retry_out_of_memory
from texzero.texture.formats import get_format_info
from texzero.texture.subresource import SubresourceRange


def _attempt(
    params: CaseParams,
    pool: DevicePool,
    uninitialized_ranges: Sequence[SubresourceRange] | None,
    reclaim_on_oom: bool,
    attempt: int,
) -> CaseOutcome:
    feature = get_format_info(params["format"]).feature
    required = frozenset({feature}) if feature else frozenset()
    with case_context(params.case_id, attempt), pool.acquire(required) as device:
        oracle = ZeroInitOracle(device, params, uninitialized_ranges)
        try:
            return oracle.run()
        except DeviceOutOfMemoryError:
            if reclaim_on_oom:
                reclaim_device_memory(device, attempt)
            raise


def run_case(
    params: Mapping[str, Any],
    pool: DevicePool,
    *,
    uninitialized_ranges: Sequence[SubresourceRange] | None = None,
    oom_retries: int = 0,
    reclaim_on_oom: bool = True,
) -> CaseOutcome:
    """Run one case on a device leased from ``pool``.

    Every record logged while the case runs carries its ``case_id``, and
    records from inside an attempt also carry the attempt number.

    Args:
        params: Axis values of the case.
        pool: Source of devices.
        uninitialized_ranges: Override of the standard partition.
        oom_retries: Extra attempts, each on a fresh device, after running
            out of device memory.
        reclaim_on_oom: Reclaim device memory before giving up on an attempt.

    Returns:
        The case outcome. Never raises for case-local problems.
    """
    if not isinstance(params, CaseParams):
        params = CaseParams(params)
    start = time.perf_counter()
    attempts = 0

    def attempt(number: int) -> CaseOutcome:
        nonlocal attempts
        attempts = number
        return _attempt(params, pool, uninitialized_ranges, reclaim_on_oom, number)

    with case_context(params.case_id):
        try:
            outcome = retry_out_of_memory(attempt, max_retries=oom_retries)
        except DeviceOutOfMemoryError as e:
            outcome = _outcome(params, "skip", f"out of device memory: {e}", start)
        except UnsupportedCapabilityError as e:
            outcome = _outcome(params, "skip", str(e), start)
        except VerificationError as e:
            outcome = _outcome(params, "fail", str(e), start, e.mismatches)
        except DeviceValidationError as e:
            outcome = _outcome(params, "fail", f"device validation error: {e}", start)
        log_outcome(outcome, attempts)
    return outcome


def _outcome(
    params: CaseParams,
    status: str,
    reason: str,
    start: float,
    mismatches: list | None = None,
) -> CaseOutcome:
    return CaseOutcome(
        case_id=params.case_id,
        status=status,  # type: ignore[arg-type]
        reason=reason,
        mismatches=mismatches or [],
        duration_sec=time.perf_counter() - start,
    )


def run_cases(
    cases: Iterable[Mapping[str, Any]],
    pool: DevicePool,
    *,
    fail_fast: bool = False,
    max_cases: int | None = None,
    oom_retries: int = 0,
    reclaim_on_oom: bool = True,
    on_outcome: Callable[[CaseOutcome], None] | None = None,
) -> list[CaseOutcome]:
    """Run ``cases`` in order, one device lease per case.

    Args:
        cases: A ``ParamsBuilder`` or any iterable of case parameters.
        pool: Source of devices.
        fail_fast: Stop after the first failing case.
        max_cases: Stop after this many cases.
        oom_retries: See ``run_case``.
        reclaim_on_oom: See ``run_case``.
        on_outcome: Called with each outcome as soon as it is known.

    Returns:
        Outcomes in case order.
    """
    outcomes: list[CaseOutcome] = []
    for params in cases:
        if max_cases is not None and len(outcomes) >= max_cases:
            break
        outcome = run_case(params, pool, oom_retries=oom_retries, reclaim_on_oom=reclaim_on_oom)
        outcomes.append(outcome)
        if on_outcome is not None:
            on_outcome(outcome)
        if fail_fast and outcome.failed:
            logger.warning("Stopping after first failure (fail_fast)")
            break

    summary = summarize(outcomes)
    logger.info(
        f"Ran {summary.total} case(s): {summary.passed} passed, "
        f"{summary.failed} failed, {summary.skipped} skipped"
    )
    return outcomes


def summarize(outcomes: list[CaseOutcome]) -> RunSummary:
    return RunSummary.from_outcomes(outcomes)

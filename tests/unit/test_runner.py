"""Tests for case classification (pass / fail / skip) and run summaries."""

import json

from texzero.device.simulated import SimulatedDevice, SimulatedDevicePool
from texzero.domain.outcome import CaseOutcome
from texzero.domain.types import ReadMethod, TextureAspect
from texzero.logging import setup_logging
from texzero.runner import run_case, run_cases, summarize
from texzero.texture.subresource import Range, SubresourceRange
from tests.conftest import make_params
from tests.fakes import FakeDevicePool, OutOfMemoryDevice, RejectingDevice


class TestRunCase:
    def test_pass(self, pool):
        outcome = run_case(make_params(), pool)
        assert outcome.passed
        assert outcome.case_id == make_params().case_id
        assert outcome.duration_sec >= 0.0

    def test_plain_mapping(self, pool):
        outcome = run_case(make_params().to_dict(), pool)
        assert outcome.passed

    def test_fail_on_mismatch(self):
        pool = SimulatedDevicePool(faults={"no_lazy_clear"})
        outcome = run_case(make_params(), pool)
        assert outcome.failed
        assert len(outcome.mismatches) == 1
        assert "mismatched" in outcome.reason

    def test_skip_missing_feature(self):
        pool = FakeDevicePool()
        params = make_params(
            format="depth32float-stencil8",
            read_method=ReadMethod.DEPTH_TEST,
            aspect=TextureAspect.DEPTH_ONLY,
        )
        outcome = run_case(params, pool)
        assert outcome.skipped
        assert "depth32float-stencil8" in outcome.reason
        assert pool.requests == [frozenset({"depth32float-stencil8"})]
        assert pool.devices == []

    def test_feature_available(self):
        pool = SimulatedDevicePool(features={"depth32float-stencil8"})
        params = make_params(
            format="depth32float-stencil8",
            read_method=ReadMethod.STENCIL_TEST,
            aspect=TextureAspect.STENCIL_ONLY,
        )
        assert run_case(params, pool).passed

    def test_skip_out_of_memory(self):
        pool = SimulatedDevicePool(memory_limit_bytes=1024)
        outcome = run_case(make_params(mip_level_count=5), pool)
        assert outcome.skipped
        assert outcome.reason.startswith("out of device memory")

    def test_out_of_memory_retried_on_fresh_device(self):
        pool = FakeDevicePool(factory=OutOfMemoryDevice)
        outcome = run_case(make_params(), pool, oom_retries=2)
        assert outcome.skipped
        assert len(pool.devices) == 3
        assert all(d.reclaim_calls >= 1 for d in pool.devices)

    def test_reclaim_can_be_disabled(self):
        pool = FakeDevicePool(factory=OutOfMemoryDevice)
        run_case(make_params(), pool, reclaim_on_oom=False)
        [device] = pool.devices
        assert device.reclaim_calls == 0

    def test_retry_succeeds(self):
        factories = iter([OutOfMemoryDevice, SimulatedDevice])
        pool = FakeDevicePool(factory=lambda: next(factories)())
        outcome = run_case(make_params(), pool, oom_retries=1)
        assert outcome.passed
        assert len(pool.devices) == 2

    def test_device_validation_error_fails(self):
        pool = FakeDevicePool(factory=RejectingDevice)
        outcome = run_case(make_params(), pool)
        assert outcome.failed
        assert outcome.reason == "device validation error: command encoding disabled"

    def test_explicit_ranges(self, pool):
        ranges = [SubresourceRange(Range(1, 3), Range(0, 1))]
        outcome = run_case(
            make_params(mip_level_count=3, canary_on_creation=True), pool, uninitialized_ranges=ranges
        )
        assert outcome.passed


class TestRunCaseLogging:
    def test_records_tagged_with_case_and_attempt(self, capsys):
        setup_logging(verbosity="verbose", json_output=True)
        params = make_params()
        run_case(params, FakeDevicePool(factory=OutOfMemoryDevice), oom_retries=1)
        records = [json.loads(line)["record"] for line in capsys.readouterr().err.splitlines()]

        reclaims = [r for r in records if r["message"].startswith("Reclaimed")]
        assert [r["extra"]["attempt"] for r in reclaims] == [1, 2]
        assert all(r["extra"]["case_id"] == params.case_id for r in records)

        [retry] = [r for r in records if r["message"].startswith("Out of device memory on attempt")]
        assert retry["level"]["name"] == "WARNING"

        outcome = records[-1]
        assert outcome["level"]["name"] == "INFO"
        assert outcome["message"].startswith(f"Skipped {params.case_id} after 2 attempts")

    def test_failure_logged_as_warning(self, capsys):
        setup_logging(verbosity="quiet")
        run_case(make_params(), SimulatedDevicePool(faults={"no_lazy_clear"}))
        err = capsys.readouterr().err
        assert f"Failed {make_params().case_id}: 1 subresource(s) mismatched" in err


class TestRunCases:
    def test_runs_in_order(self, pool):
        cases = [make_params(format=f) for f in ("r8unorm", "rg8unorm", "rgba8unorm")]
        outcomes = run_cases(cases, pool)
        assert [o.case_id for o in outcomes] == [c.case_id for c in cases]
        assert pool.leases == 3

    def test_failure_does_not_stop_the_run(self):
        pool = SimulatedDevicePool(faults={"no_lazy_clear"})
        outcomes = run_cases([make_params(), make_params(format="r8unorm")], pool)
        assert [o.status for o in outcomes] == ["fail", "fail"]

    def test_fail_fast(self):
        pool = SimulatedDevicePool(faults={"no_lazy_clear"})
        outcomes = run_cases([make_params(), make_params(format="r8unorm")], pool, fail_fast=True)
        assert len(outcomes) == 1

    def test_max_cases(self, pool):
        cases = (make_params(format=f) for f in ("r8unorm", "rg8unorm", "rgba8unorm"))
        assert len(run_cases(cases, pool, max_cases=2)) == 2

    def test_on_outcome_callback(self, pool):
        seen = []
        run_cases([make_params()], pool, on_outcome=seen.append)
        assert [o.status for o in seen] == ["pass"]

    def test_skips_do_not_stop_the_run(self):
        pool = FakeDevicePool()
        skipped = make_params(
            format="depth32float-stencil8",
            read_method=ReadMethod.DEPTH_TEST,
            aspect=TextureAspect.DEPTH_ONLY,
        )
        outcomes = run_cases([skipped, make_params()], pool, fail_fast=True)
        assert [o.status for o in outcomes] == ["skip", "pass"]


class TestSummarize:
    def test_counts(self):
        outcomes = [
            CaseOutcome(case_id="a", status="pass"),
            CaseOutcome(case_id="b", status="fail", reason="1 subresource(s) mismatched"),
            CaseOutcome(case_id="c", status="skip", reason="no feature"),
            CaseOutcome(case_id="d", status="skip", reason="no feature"),
        ]
        summary = summarize(outcomes)
        assert (summary.total, summary.passed, summary.failed, summary.skipped) == (4, 1, 1, 2)
        assert summary.skip_reasons == {"no feature": 2}
        assert not summary.ok

    def test_empty(self):
        summary = summarize([])
        assert summary.total == 0
        assert summary.ok

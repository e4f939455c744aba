"""Tests for logging configuration."""

import json

from loguru import logger

from texzero.domain.outcome import CaseOutcome
from texzero.logging import (
    OUTCOME_LEVELS,
    VERBOSITY_ENV_VAR,
    case_context,
    log_outcome,
    setup_logging,
)


def _last_record(err):
    return json.loads(err.strip().splitlines()[-1])["record"]


class TestSetupLogging:
    """Tests for setup_logging function."""

    def teardown_method(self):
        logger.remove()

    def test_normal_hides_debug(self, capsys):
        setup_logging(verbosity="normal")
        logger.debug("hidden detail")
        logger.info("visible line")
        err = capsys.readouterr().err
        assert "visible line" in err
        assert "hidden detail" not in err

    def test_quiet_shows_warnings_only(self, capsys):
        setup_logging(verbosity="quiet")
        logger.info("skipped case")
        logger.warning("failed case")
        err = capsys.readouterr().err
        assert "failed case" in err
        assert "skipped case" not in err

    def test_verbose_shows_debug_with_case_fields(self, capsys):
        setup_logging(verbosity="verbose")
        with case_context("format=r8unorm", attempt=2):
            logger.debug("per-case detail")
        err = capsys.readouterr().err
        assert "per-case detail" in err
        assert "format=r8unorm" in err
        assert " #2 " in err

    def test_verbose_outside_case(self, capsys):
        setup_logging(verbosity="verbose")
        logger.info("run summary")
        assert " #- " in capsys.readouterr().err

    def test_verbosity_from_env(self, capsys, monkeypatch):
        monkeypatch.setenv(VERBOSITY_ENV_VAR, "quiet")
        setup_logging()
        logger.info("not shown")
        assert "not shown" not in capsys.readouterr().err

    def test_invalid_env_verbosity_falls_back_to_normal(self, capsys, monkeypatch):
        monkeypatch.setenv(VERBOSITY_ENV_VAR, "chatty")
        setup_logging()
        logger.info("shown")
        assert "shown" in capsys.readouterr().err

    def test_json_output(self, capsys):
        setup_logging(verbosity="normal", json_output=True)
        logger.info("structured")
        record = _last_record(capsys.readouterr().err)
        assert record["message"] == "structured"
        assert record["extra"] == {"case_id": "-", "attempt": "-"}

    def test_log_file_gets_debug_even_when_quiet(self, tmp_path, capsys):
        log_file = tmp_path / "texzero.log"
        setup_logging(verbosity="quiet", log_file=str(log_file))
        with case_context("format=rgba8unorm"):
            logger.debug("written to file")
        logger.complete()
        assert "written to file" not in capsys.readouterr().err
        content = log_file.read_text()
        assert "written to file" in content
        assert "format=rgba8unorm" in content


class TestCaseContext:
    def teardown_method(self):
        logger.remove()

    def test_nested_attempt_keeps_case_id(self, capsys):
        setup_logging(verbosity="verbose", json_output=True)
        with case_context("case-a"):
            with case_context("case-a", attempt=3):
                logger.debug("inside attempt")
            inner = _last_record(capsys.readouterr().err)
            logger.debug("after attempt")
            outer = _last_record(capsys.readouterr().err)
        assert inner["extra"] == {"case_id": "case-a", "attempt": 3}
        assert outer["extra"] == {"case_id": "case-a", "attempt": "-"}

    def test_context_is_dropped_on_exit(self, capsys):
        setup_logging(verbosity="verbose", json_output=True)
        with case_context("case-b", attempt=1):
            pass
        logger.info("between cases")
        assert _last_record(capsys.readouterr().err)["extra"]["case_id"] == "-"


class TestLogOutcome:
    def teardown_method(self):
        logger.remove()

    def test_levels_follow_status(self):
        assert OUTCOME_LEVELS == {"pass": "DEBUG", "skip": "INFO", "fail": "WARNING"}

    def test_normal_hides_passes(self, capsys):
        setup_logging(verbosity="normal")
        log_outcome(CaseOutcome(case_id="a", status="pass", duration_sec=0.25))
        log_outcome(CaseOutcome(case_id="b", status="skip", reason="no feature"))
        log_outcome(CaseOutcome(case_id="c", status="fail", reason="1 subresource(s) mismatched"))
        err = capsys.readouterr().err
        assert "Passed a" not in err
        assert "Skipped b: no feature" in err
        assert "Failed c: 1 subresource(s) mismatched" in err

    def test_pass_reports_duration(self, capsys):
        setup_logging(verbosity="verbose", json_output=True)
        log_outcome(CaseOutcome(case_id="a", status="pass", duration_sec=0.25))
        record = _last_record(capsys.readouterr().err)
        assert record["message"] == "Passed a in 0.250s"
        assert record["level"]["name"] == "DEBUG"

    def test_retries_mentioned(self, capsys):
        setup_logging(verbosity="normal", json_output=True)
        log_outcome(CaseOutcome(case_id="a", status="skip", reason="out of memory"), attempts=3)
        assert _last_record(capsys.readouterr().err)["message"] == (
            "Skipped a after 3 attempts: out of memory"
        )

    def test_reason_with_braces_is_not_formatted(self, capsys):
        setup_logging(verbosity="normal", json_output=True)
        log_outcome(CaseOutcome(case_id="a", status="fail", reason="got {'R': 171.0}"))
        assert _last_record(capsys.readouterr().err)["message"] == "Failed a: got {'R': 171.0}"

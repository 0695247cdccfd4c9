"""
Tests for structured logging and resolution counters.
"""

import pytest

from poresolve.logger import StructuredLogger, get_logger, reset_logger


@pytest.fixture
def quiet():
    return StructuredLogger(name="test.quiet", enable_console=False)


class TestOutput:
    def test_context_rendered_as_json(self, caplog):
        logger = StructuredLogger(name="test.context", enable_console=False)

        with caplog.at_level("INFO", logger="test.context"):
            logger.info("Resolved", kind="customer", key="C-100")

        assert 'Resolved | Context: {"kind": "customer", "key": "C-100"}' in caplog.text

    def test_plain_message_without_context(self, caplog):
        logger = StructuredLogger(name="test.plain", enable_console=False)

        with caplog.at_level("WARNING", logger="test.plain"):
            logger.warning("Cache cold")

        assert "Cache cold" in caplog.text
        assert "Context" not in caplog.text

    def test_level_filters_records(self, caplog):
        logger = StructuredLogger(name="test.level", level="warning", enable_console=False)

        with caplog.at_level("DEBUG"):
            logger.info("hidden")
            logger.error("shown")

        assert "hidden" not in caplog.text
        assert "shown" in caplog.text

    def test_daily_file(self, tmp_path):
        logger = StructuredLogger(name="test.file", level="DEBUG", log_dir=tmp_path, enable_file=True, enable_console=False)

        logger.debug("Candidate pool", size=3)

        [log_file] = tmp_path.glob("poresolve_*.log")
        assert 'Candidate pool | Context: {"size": 3}' in log_file.read_text()

    def test_no_file_unless_enabled(self, tmp_path):
        StructuredLogger(name="test.nofile", log_dir=tmp_path, enable_console=False).info("x")

        assert list(tmp_path.iterdir()) == []


class TestCounters:
    def test_resolutions_per_kind_and_method(self, quiet):
        quiet.record_resolution("customer", "exact", True)
        quiet.record_resolution("customer", "none", False)
        quiet.record_resolution("item", "semantic", True)

        metrics = quiet.get_metrics()

        assert metrics["resolutions_attempted"] == 3
        assert metrics["resolutions_matched"] == 2
        assert metrics["matches_by_method"] == {"exact": 1, "none": 1, "semantic": 1}
        assert metrics["kind_match_rate"]["customer"] == {"attempts": 2, "matches": 1, "match_rate": 0.5}
        assert metrics["kind_match_rate"]["item"]["match_rate"] == 1.0

    def test_match_rate_rounded(self, quiet):
        for matched in (True, True, False):
            quiet.record_resolution("item", "exact", matched)

        assert quiet.get_metrics()["kind_match_rate"]["item"]["match_rate"] == 0.667

    def test_provider_and_store_counters(self, quiet):
        quiet.record_provider_call()
        quiet.record_provider_call()
        quiet.record_provider_failure("embedding", "Timeout")
        quiet.record_provider_failure("embedding", "Timeout")
        quiet.record_provider_failure("llm", "HTTPError")
        quiet.record_tiebreak()
        quiet.record_store_failure()

        metrics = quiet.get_metrics()

        assert metrics["provider_calls"] == 2
        assert metrics["provider_failures_by_type"] == {"embedding:Timeout": 2, "llm:HTTPError": 1}
        assert metrics["tiebreaks_invoked"] == 1
        assert metrics["store_failures"] == 1

    def test_snapshot_is_detached(self, quiet):
        quiet.record_resolution("contact", "exact", True)

        quiet.get_metrics()["kind_match_rate"]["contact"]["attempts"] = 99

        assert quiet.metrics["kind_match_rate"]["contact"]["attempts"] == 1

    def test_summary(self, caplog):
        logger = StructuredLogger(name="test.summary", enable_console=False)
        logger.record_resolution("customer", "exact", True)
        logger.record_provider_failure("llm", "Timeout")

        with caplog.at_level("INFO", logger="test.summary"):
            logger.log_metrics_summary()

        assert "Resolutions: 1/1 matched (100.0%)" in caplog.text
        assert "customer: 1/1 (100.0%)" in caplog.text
        assert "provider failure llm:Timeout: 1" in caplog.text

    def test_empty_summary(self, caplog, quiet):
        with caplog.at_level("INFO", logger="test.quiet"):
            quiet.log_metrics_summary()

        assert "Resolutions: 0/0 matched (0%)" in caplog.text


class TestGlobalLogger:
    def test_shared_instance(self):
        assert get_logger(name="test.global", enable_console=False) is get_logger()

    def test_reset_starts_over(self):
        first = get_logger(name="test.global", enable_console=False)
        first.record_provider_call()

        reset_logger()
        second = get_logger(name="test.global", enable_console=False)

        assert second is not first
        assert second.metrics["provider_calls"] == 0

    def test_environment(self, tmp_path, monkeypatch):
        """PORESOLVE_LOG_DIR turns on file output and PORESOLVE_LOG_LEVEL sets the level."""
        monkeypatch.setenv("PORESOLVE_LOG_DIR", str(tmp_path))
        monkeypatch.setenv("PORESOLVE_LOG_LEVEL", "ERROR")

        logger = get_logger(name="test.global", enable_console=False)
        logger.info("From env")

        assert logger.logger.level == 40
        assert len(list(tmp_path.glob("poresolve_*.log"))) == 1

"""
Tests for stage health tracking.
"""

import pytest

from poresolve.health import CRITICAL, DEGRADED, HEALTHY, HealthTracker


def _fail():
    raise ConnectionError("refused")


class TestHealthTracker:
    """Consecutive failure tracking per stage."""

    def test_unknown_stage_is_healthy(self):
        assert HealthTracker().is_healthy("embedding") is True

    def test_threshold_marks_unhealthy(self):
        """Three consecutive failures mark a stage unhealthy."""
        tracker = HealthTracker(failure_threshold=3)

        for _ in range(2):
            tracker.record_failure("embedding", ConnectionError("refused"))
        assert tracker.is_healthy("embedding") is True

        tracker.record_failure("embedding", ConnectionError("refused"))
        assert tracker.is_healthy("embedding") is False
        assert tracker.unhealthy_stages() == ["embedding"]

    def test_success_resets_streak(self):
        """A success heals the stage."""
        tracker = HealthTracker(failure_threshold=2)
        tracker.record_failure("llm", ValueError("bad"))
        tracker.record_failure("llm", ValueError("bad"))

        tracker.record_success("llm")

        status = tracker.status("llm")
        assert status.is_healthy is True
        assert status.consecutive_failures == 0
        assert status.failures == 2
        assert status.total_calls == 3

    def test_call_records_and_reraises(self):
        """Failures pass through unchanged; calls still go through when unhealthy."""
        tracker = HealthTracker(failure_threshold=1)

        with pytest.raises(ConnectionError):
            tracker.call("embedding", _fail)
        assert tracker.is_healthy("embedding") is False

        assert tracker.call("embedding", lambda x: x * 2, 21) == 42
        assert tracker.is_healthy("embedding") is True

    def test_response_time_average(self):
        """Call durations come from the injected clock."""
        ticks = iter([0.0, 0.1, 1.0, 1.3])
        tracker = HealthTracker(clock=lambda: next(ticks))

        tracker.call("embedding", lambda: None)
        tracker.call("embedding", lambda: None)

        assert tracker.status("embedding").average_response_ms == pytest.approx(200.0)

    def test_status_is_a_snapshot(self):
        tracker = HealthTracker()
        tracker.record_success("llm")

        snapshot = tracker.status("llm")
        snapshot.total_calls = 99

        assert tracker.status("llm").total_calls == 1

    def test_report_levels(self):
        """System health is healthy, degraded, then critical."""
        tracker = HealthTracker(failure_threshold=1)
        assert tracker.report()["system_health"] == HEALTHY

        tracker.record_failure("embedding", ConnectionError("x"))
        assert tracker.report()["system_health"] == DEGRADED

        tracker.record_failure("llm", ConnectionError("x"))
        report = tracker.report()
        assert report["system_health"] == CRITICAL
        assert report["unhealthy_stages"] == ["embedding", "llm"]
        assert report["stages"]["llm"]["success_rate"] == 0.0

    def test_reset(self):
        tracker = HealthTracker(failure_threshold=1)
        tracker.record_failure("embedding", ConnectionError("x"))
        tracker.record_failure("llm", ConnectionError("x"))

        tracker.reset("embedding")
        assert tracker.unhealthy_stages() == ["llm"]

        tracker.reset()
        assert tracker.unhealthy_stages() == []

    def test_threshold_validated(self):
        with pytest.raises(ValueError):
            HealthTracker(failure_threshold=0)

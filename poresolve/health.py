"""
Health tracking for provider-backed cascade stages.

Works like a circuit breaker that never opens: consecutive failures past a
threshold mark a stage unhealthy, callers can read that signal and route
work to manual review, but calls still go through.
"""

import threading
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .logger import get_logger


HEALTHY = "healthy"
DEGRADED = "degraded"
CRITICAL = "critical"


@dataclass
class StageHealth:
    """Rolling health statistics for one stage."""

    is_healthy: bool = True
    consecutive_failures: int = 0
    total_calls: int = 0
    failures: int = 0
    last_success_time: Optional[datetime] = None
    last_error_time: Optional[datetime] = None
    last_error: Optional[str] = None
    average_response_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_calls == 0:
            return 100.0
        return (self.total_calls - self.failures) / self.total_calls * 100

    def to_dict(self) -> dict:
        data = asdict(self)
        data["success_rate"] = round(self.success_rate, 1)
        return data


class HealthTracker:
    """
    Records consecutive failures per stage name.

    Stages are created on first use, so any provider-backed stage
    ("embedding", "llm", ...) can be tracked without registration.
    """

    def __init__(self, failure_threshold: int = 3, clock: Callable[[], float] = time.perf_counter):
        """
        Args:
            failure_threshold: Consecutive failures before a stage is unhealthy
            clock: Monotonic clock used to time calls, in seconds
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self._clock = clock
        self._stages: Dict[str, StageHealth] = {}
        self._lock = threading.Lock()
        self.logger = get_logger()

    def _stage(self, stage: str) -> StageHealth:
        status = self._stages.get(stage)
        if status is None:
            status = StageHealth()
            self._stages[stage] = status
        return status

    def call(self, stage: str, func: Callable, *args, **kwargs):
        """
        Execute func and record the outcome for stage.

        Failures are recorded and re-raised unchanged.
        """
        start = self._clock()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self.record_failure(stage, e, (self._clock() - start) * 1000)
            raise
        self.record_success(stage, (self._clock() - start) * 1000)
        return result

    def record_success(self, stage: str, response_ms: float = 0.0):
        """Reset the failure streak and fold the response time into the average."""
        with self._lock:
            status = self._stage(stage)
            status.total_calls += 1
            status.consecutive_failures = 0
            status.is_healthy = True
            status.last_success_time = datetime.now()
            status.average_response_ms += (response_ms - status.average_response_ms) / status.total_calls

    def record_failure(self, stage: str, error: Exception, response_ms: float = 0.0):
        """Extend the failure streak; past the threshold the stage is unhealthy."""
        with self._lock:
            status = self._stage(stage)
            status.total_calls += 1
            status.failures += 1
            status.consecutive_failures += 1
            status.last_error_time = datetime.now()
            status.last_error = str(error)
            status.average_response_ms += (response_ms - status.average_response_ms) / status.total_calls
            was_healthy = status.is_healthy
            status.is_healthy = status.consecutive_failures < self.failure_threshold
            streak = status.consecutive_failures

        if was_healthy and not status.is_healthy:
            self.logger.error(
                "Stage marked unhealthy",
                stage=stage,
                consecutive_failures=streak,
                error=str(error),
            )
        else:
            self.logger.warning(
                "Stage call failed",
                stage=stage,
                consecutive_failures=streak,
                error=str(error),
            )

    def is_healthy(self, stage: str) -> bool:
        with self._lock:
            status = self._stages.get(stage)
            return status is None or status.is_healthy

    def unhealthy_stages(self) -> List[str]:
        with self._lock:
            return sorted(name for name, s in self._stages.items() if not s.is_healthy)

    def status(self, stage: str) -> StageHealth:
        """Snapshot of one stage (a fresh StageHealth if never called)."""
        with self._lock:
            status = self._stages.get(stage)
            return StageHealth(**asdict(status)) if status else StageHealth()

    def report(self) -> dict:
        """
        Health report across all stages.

        system_health is healthy with no unhealthy stage, degraded with one,
        critical with two or more.
        """
        with self._lock:
            stages = {name: s.to_dict() for name, s in self._stages.items()}
        unhealthy = [name for name, s in stages.items() if not s["is_healthy"]]
        if not unhealthy:
            system_health = HEALTHY
        elif len(unhealthy) == 1:
            system_health = DEGRADED
        else:
            system_health = CRITICAL
        return {
            "stages": stages,
            "unhealthy_stages": sorted(unhealthy),
            "system_health": system_health,
            "last_updated": datetime.now().isoformat(),
        }

    def reset(self, stage: Optional[str] = None):
        """Clear one stage, or every stage when stage is None."""
        with self._lock:
            if stage is None:
                self._stages.clear()
            else:
                self._stages.pop(stage, None)

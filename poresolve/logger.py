"""
Structured logging for the resolution cascade.

One process-wide logger writes to stderr (stdout carries CLI output) and,
when a log directory is configured, to a daily file. Keyword arguments to
the log methods are appended as a JSON context blob. The logger also keeps
the counters behind the session summary: match rates per kind and method,
provider calls and failures, tiebreaks and store failures.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _empty_metrics() -> dict:
    return {
        "resolutions_attempted": 0,
        "resolutions_matched": 0,
        "matches_by_method": {},
        "kind_match_rate": {},
        "provider_calls": 0,
        "provider_failures_by_type": {},
        "tiebreaks_invoked": 0,
        "store_failures": 0,
    }


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
    return handler


class StructuredLogger:
    """
    Logger with JSON keyword context and thread-safe resolution counters.

    Args:
        name: Name of the underlying logging.Logger
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the daily log file (default: logs/)
        enable_file: Also write every record, DEBUG included, to log_dir
        enable_console: Write records at `level` and above to stderr
    """

    def __init__(
        self,
        name: str = "poresolve",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        numeric_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(numeric_level)
        self.logger.handlers.clear()
        self._lock = threading.Lock()
        self.metrics = _empty_metrics()

        if enable_console:
            self.logger.addHandler(
                _handler(logging.StreamHandler(sys.stderr), numeric_level, CONSOLE_FORMAT)
            )

        if enable_file:
            directory = Path("logs") if log_dir is None else log_dir
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / f"poresolve_{datetime.now():%Y%m%d}.log"
            self.logger.addHandler(
                _handler(logging.FileHandler(path, encoding="utf-8"), logging.DEBUG, FILE_FORMAT)
            )

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._log(logging.CRITICAL, message, context)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Counters

    def record_resolution(self, kind: str, method: str, matched: bool):
        """Record one finished resolution call."""
        with self._lock:
            self.metrics["resolutions_attempted"] += 1
            if matched:
                self.metrics["resolutions_matched"] += 1
            by_method = self.metrics["matches_by_method"]
            by_method[method] = by_method.get(method, 0) + 1
            stats = self.metrics["kind_match_rate"].setdefault(
                kind, {"attempts": 0, "matches": 0}
            )
            stats["attempts"] += 1
            if matched:
                stats["matches"] += 1

    def record_provider_call(self):
        """Increment provider call counter."""
        with self._lock:
            self.metrics["provider_calls"] += 1

    def record_provider_failure(self, provider: str, error_type: str):
        """Record a failed provider call."""
        key = f"{provider}:{error_type}"
        with self._lock:
            failures = self.metrics["provider_failures_by_type"]
            failures[key] = failures.get(key, 0) + 1

    def record_tiebreak(self):
        """Increment tiebreak counter."""
        with self._lock:
            self.metrics["tiebreaks_invoked"] += 1

    def record_store_failure(self):
        """Increment store failure counter."""
        with self._lock:
            self.metrics["store_failures"] += 1

    def get_metrics(self) -> dict:
        """Snapshot of the counters, with match_rate added per kind."""
        with self._lock:
            snapshot = json.loads(json.dumps(self.metrics))
        for stats in snapshot["kind_match_rate"].values():
            if stats["attempts"]:
                stats["match_rate"] = round(stats["matches"] / stats["attempts"], 3)
        return snapshot

    def log_metrics_summary(self):
        metrics = self.get_metrics()
        attempts = metrics["resolutions_attempted"]
        matched = metrics["resolutions_matched"]
        overall = round(matched / attempts * 100, 1) if attempts else 0

        self.info("=== Resolution Session Metrics ===")
        self.info(f"Resolutions: {matched}/{attempts} matched ({overall}%)")
        self.info(f"Provider calls: {metrics['provider_calls']}")
        self.info(f"Tiebreaks: {metrics['tiebreaks_invoked']}")

        for kind, stats in metrics["kind_match_rate"].items():
            rate = stats.get("match_rate", 0) * 100
            self.info(f"  {kind}: {stats['matches']}/{stats['attempts']} ({rate:.1f}%)")
        for method, count in metrics["matches_by_method"].items():
            self.info(f"  method {method}: {count}")
        for failure, count in metrics["provider_failures_by_type"].items():
            self.info(f"  provider failure {failure}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "poresolve", level: Optional[str] = None, **kwargs) -> StructuredLogger:
    """
    Return the process-wide logger, creating it on first use.

    PORESOLVE_LOG_LEVEL sets the level and PORESOLVE_LOG_DIR turns on
    file output unless the caller passes log_dir explicitly.
    """
    global _global_logger

    if _global_logger is None:
        env_dir = os.getenv("PORESOLVE_LOG_DIR")
        if env_dir and "log_dir" not in kwargs:
            kwargs["log_dir"] = Path(env_dir)
            kwargs.setdefault("enable_file", True)
        _global_logger = StructuredLogger(
            name=name,
            level=level or os.getenv("PORESOLVE_LOG_LEVEL", "INFO"),
            **kwargs,
        )
    return _global_logger


def reset_logger():
    """Drop the process-wide logger so the next get_logger builds a new one."""
    global _global_logger
    _global_logger = None

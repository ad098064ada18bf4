"""Timing of sync phases for logs and the status report."""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional


@dataclass
class PhaseTiming:
    """Last observed run of one phase (sync, auto_commit, ...)."""
    operation: str
    duration: float
    finished_at: float
    success: bool = True


class PerformanceLogger:
    """
    Records how long the most recent sync, commit or push took.

    Phases slower than ``slow_threshold`` seconds are logged as warnings.
    """

    def __init__(self, logger_name: str = 'cfgsync.git_sync.performance', slow_threshold: float = 10.0):
        self.logger = logging.getLogger(logger_name)
        self.slow_threshold = slow_threshold
        self._timings: Dict[str, PhaseTiming] = {}
        self._lock = threading.Lock()

    @contextmanager
    def time_operation(self, operation: str, log_level: int = logging.DEBUG) -> Generator[None, None, None]:
        """Time the enclosed block under ``operation``; exceptions propagate."""
        started = time.monotonic()
        self.logger.log(log_level, f"Starting {operation}")

        success = True
        try:
            yield
        except Exception as e:
            success = False
            self.logger.error(f"{operation} failed after {time.monotonic() - started:.3f}s: {e}")
            raise
        finally:
            duration = time.monotonic() - started
            with self._lock:
                self._timings[operation] = PhaseTiming(operation, duration, time.time(), success)

            if duration > self.slow_threshold:
                self.logger.warning(f"Slow operation: {operation} took {duration:.3f}s")
            elif success:
                self.logger.log(log_level, f"{operation} completed in {duration:.3f}s")

    def summary(self) -> List[Dict[str, Any]]:
        """Most recent timing per phase, slowest first."""
        with self._lock:
            ordered = sorted(self._timings.values(), key=lambda t: t.duration, reverse=True)
        return [
            {"operation": t.operation, "duration": round(t.duration, 3), "success": t.success}
            for t in ordered
        ]


_performance_logger: Optional[PerformanceLogger] = None


def get_performance_logger() -> PerformanceLogger:
    """Process-wide performance logger."""
    global _performance_logger
    if _performance_logger is None:
        _performance_logger = PerformanceLogger()
    return _performance_logger

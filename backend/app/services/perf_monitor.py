"""Performance monitoring utilities for Bayedi Estimator pricing."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("bayedi-api.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def my_function():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for pricing metrics.

    Tracks:
    - Item price calculations completed (preview and persisted)
    - Cumulative and average calculation duration
    - Partial results (calculations with catalog misses)
    - Error count broken down by operation name
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calculations: int = 0
        self._partial_results: int = 0
        self._total_duration_ms: float = 0.0
        self._slowest_ms: float = 0.0
        self._error_counts: Dict[str, int] = {}

    def record_calculation(self, duration_ms: float, partial: bool = False) -> None:
        with self._lock:
            self._calculations += 1
            self._total_duration_ms += duration_ms
            if partial:
                self._partial_results += 1
            if duration_ms > self._slowest_ms:
                self._slowest_ms = duration_ms

    def record_error(self, operation: str) -> None:
        with self._lock:
            self._error_counts[operation] = self._error_counts.get(operation, 0) + 1

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            avg = (
                round(self._total_duration_ms / self._calculations, 2)
                if self._calculations > 0
                else 0.0
            )
            return {
                "calculations_processed": self._calculations,
                "partial_results": self._partial_results,
                "avg_calculation_ms": avg,
                "slowest_calculation_ms": round(self._slowest_ms, 2),
                "error_count": sum(self._error_counts.values()),
                "error_count_by_operation": dict(self._error_counts),
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._calculations = 0
            self._partial_results = 0
            self._total_duration_ms = 0.0
            self._slowest_ms = 0.0
            self._error_counts.clear()


# Module-level singleton
tracker = PerformanceTracker()

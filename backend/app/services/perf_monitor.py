"""Performance monitoring utilities for the aggregation services."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("dowee-api.perf")


def timed_async(func: Callable) -> Callable:
    """
    Decorator that measures async service operations and feeds the tracker.

    Usage::

        @timed_async
        async def portfolio_overview(self, ...):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            tracker.record_operation_error(func.__name__)
            raise
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "operation timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
        tracker.record_operation(func.__name__, duration_ms)
        return result
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for aggregation requests.

    Tracks:
    - Total computations completed
    - Average duration per operation
    - Slowest operation seen
    - Error count broken down by operation name
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._computations: int = 0
        self._total_duration_ms: float = 0.0
        self._durations: Dict[str, list] = {}   # operation -> [duration_ms, ...]
        self._error_counts: Dict[str, int] = {}  # operation -> count
        self._slowest_operation: Optional[str] = None
        self._slowest_operation_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_operation(self, name: str, duration_ms: float) -> None:
        """Call once when an operation returns successfully."""
        with self._lock:
            self._computations += 1
            self._total_duration_ms += duration_ms
            self._durations.setdefault(name, []).append(duration_ms)
            if duration_ms > self._slowest_operation_ms:
                self._slowest_operation_ms = duration_ms
                self._slowest_operation = name

    def record_operation_error(self, name: str) -> None:
        with self._lock:
            self._error_counts[name] = self._error_counts.get(name, 0) + 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            computations              : int
            avg_duration_ms           : float  (0 if none processed)
            slowest_operation         : str | None
            slowest_operation_ms      : float
            error_count               : int
            error_count_by_operation  : dict  {operation: count}
            operation_avg_durations_ms: dict  {operation: avg_ms}
        """
        with self._lock:
            avg = (
                round(self._total_duration_ms / self._computations, 2)
                if self._computations > 0
                else 0.0
            )
            op_avgs = {
                name: round(sum(d) / len(d), 2) if d else 0.0
                for name, d in self._durations.items()
            }
            return {
                "computations": self._computations,
                "avg_duration_ms": avg,
                "slowest_operation": self._slowest_operation,
                "slowest_operation_ms": round(self._slowest_operation_ms, 2),
                "error_count": sum(self._error_counts.values()),
                "error_count_by_operation": dict(self._error_counts),
                "operation_avg_durations_ms": op_avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._computations = 0
            self._total_duration_ms = 0.0
            self._durations.clear()
            self._error_counts.clear()
            self._slowest_operation = None
            self._slowest_operation_ms = 0.0


# Module-level singleton; import this instance everywhere else.
tracker = PerformanceTracker()

"""Performance monitoring utilities for the fee calculation pipeline."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("archfee-api.perf")


def timed(func: Optional[Callable] = None, *, calculation: bool = False) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    The duration is recorded against the function name as a pipeline step.
    With ``calculation=True`` a successful call also counts as one finished
    recompute, using the same measurement.

    Usage::

        @timed(calculation=True)
        def recompute(self):
            ...
    """
    if func is None:
        return functools.partial(timed, calculation=calculation)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        ok = False
        try:
            result = func(*args, **kwargs)
            ok = True
            return result
        except Exception:
            tracker.record_step_error(func.__name__)
            raise
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            tracker.record_step_duration(func.__name__, duration_ms)
            if calculation and ok:
                tracker.record_calculation_complete(duration_ms)
            logger.debug(
                "function timed",
                extra={
                    "function": func.__qualname__,
                    "func_module": func.__module__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


def timed_async(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for async functions.

    Usage::

        @timed_async
        async def save(self, snapshot):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "async function timed",
                extra={
                    "function": func.__qualname__,
                    "func_module": func.__module__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for calculation metrics.

    Tracks:
    - Total recomputes completed
    - Cumulative and average recompute duration
    - Slowest step across all recomputes
    - Error count broken down by step name
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calculations_processed: int = 0
        self._total_duration_ms: float = 0.0
        self._step_totals: Dict[str, float] = {}      # step_name -> summed duration_ms
        self._step_counts: Dict[str, int] = {}        # step_name -> samples
        self._error_counts: Dict[str, int] = {}       # step_name -> count
        self._slowest_step: Optional[str] = None
        self._slowest_step_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_calculation_complete(self, duration_ms: float) -> None:
        """Call once when a full recompute finishes successfully."""
        with self._lock:
            self._calculations_processed += 1
            self._total_duration_ms += duration_ms

    def record_step_duration(self, step_name: str, duration_ms: float) -> None:
        """Record how long a single calculation step took."""
        with self._lock:
            self._step_totals[step_name] = self._step_totals.get(step_name, 0.0) + duration_ms
            self._step_counts[step_name] = self._step_counts.get(step_name, 0) + 1

            if duration_ms > self._slowest_step_ms:
                self._slowest_step_ms = duration_ms
                self._slowest_step = step_name

    def record_step_error(self, step_name: str) -> None:
        """Increment the error counter for a given step."""
        with self._lock:
            self._error_counts[step_name] = self._error_counts.get(step_name, 0) + 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            calculations_processed    : int
            avg_duration_ms           : float  (0 if none processed)
            slowest_step              : str | None
            slowest_step_ms           : float
            error_count               : int   (total across all steps)
            error_count_by_step       : dict  {step_name: count}
            step_avg_durations_ms     : dict  {step_name: avg_ms}
        """
        with self._lock:
            avg = (
                round(self._total_duration_ms / self._calculations_processed, 2)
                if self._calculations_processed > 0
                else 0.0
            )

            step_avgs: Dict[str, float] = {
                step: round(total / self._step_counts[step], 2)
                for step, total in self._step_totals.items()
            }

            return {
                "calculations_processed": self._calculations_processed,
                "avg_duration_ms": avg,
                "slowest_step": self._slowest_step,
                "slowest_step_ms": round(self._slowest_step_ms, 2),
                "error_count": sum(self._error_counts.values()),
                "error_count_by_step": dict(self._error_counts),
                "step_avg_durations_ms": step_avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._calculations_processed = 0
            self._total_duration_ms = 0.0
            self._step_totals.clear()
            self._step_counts.clear()
            self._error_counts.clear()
            self._slowest_step = None
            self._slowest_step_ms = 0.0


# Module-level singleton; import this instance everywhere else.
tracker = PerformanceTracker()

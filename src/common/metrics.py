"""Metrics service for tracking refinement steps.

Singleton service counting completed steps, their duration and how many users
moved or stayed on a tie.
"""

import threading
from typing import Dict, Optional


class RefinementMetrics:
    """Singleton service for tracking refinement step metrics.

    Thread-safe, since workers of a local group share one process.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(RefinementMetrics, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize metrics counters."""
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._reset_counters()
        self._initialized = True

    def _reset_counters(self) -> None:
        self._step_count = 0
        self._total_duration_ms = 0.0
        self._min_duration_ms = float("inf")
        self._max_duration_ms = 0.0
        self._last_num_users: Optional[int] = None
        self._last_moved: Optional[int] = None
        self._last_indifferent: Optional[int] = None

    def record_step(
        self,
        duration_ms: float,
        num_users: int,
        moved: int,
        indifferent: int,
    ) -> None:
        """Record a completed refinement step.

        Args:
            duration_ms: Wall time of the step in milliseconds
            num_users: Population size of the step
            moved: Number of users whose cluster changed
            indifferent: Number of users that stayed because of a tie
        """
        with self._lock:
            self._step_count += 1
            self._total_duration_ms += duration_ms
            self._min_duration_ms = min(self._min_duration_ms, duration_ms)
            self._max_duration_ms = max(self._max_duration_ms, duration_ms)
            self._last_num_users = num_users
            self._last_moved = moved
            self._last_indifferent = indifferent

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with metrics including:
            - step_count: Number of completed steps
            - average_duration_ms / min_duration_ms / max_duration_ms
            - last_num_users, last_moved, last_indifferent: counts of the
              most recent step (None before the first step)
        """
        with self._lock:
            avg_duration = (
                self._total_duration_ms / self._step_count
                if self._step_count > 0
                else 0.0
            )

            return {
                "step_count": self._step_count,
                "average_duration_ms": round(avg_duration, 2),
                "min_duration_ms": (
                    round(self._min_duration_ms, 2)
                    if self._min_duration_ms != float("inf")
                    else 0.0
                ),
                "max_duration_ms": round(self._max_duration_ms, 2),
                "last_num_users": self._last_num_users,
                "last_moved": self._last_moved,
                "last_indifferent": self._last_indifferent,
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._reset_counters()


# Global singleton instance
metrics_service = RefinementMetrics()

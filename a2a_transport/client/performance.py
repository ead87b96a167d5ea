"""Request timing statistics for a client."""

from typing import Any, Dict


class PerformanceTracker:
    """Running count, total and average of request durations (seconds).

    Updates happen on the event loop thread only, so no lock is needed.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self._requests_count = 0
        self._total_time = 0.0
        self._errors_count = 0

    def record(self, duration: float, success: bool = True):
        self._requests_count += 1
        self._total_time += duration
        if not success:
            self._errors_count += 1

    def stats(self) -> Dict[str, Any]:
        avg = self._total_time / self._requests_count if self._requests_count else 0.0
        return {
            "requests_count": self._requests_count,
            "errors_count": self._errors_count,
            "total_time": round(self._total_time, 6),
            "avg_response_time": round(avg, 6),
        }

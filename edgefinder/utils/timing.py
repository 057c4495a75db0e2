"""Timing utilities for per-stage run reporting."""

import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional


def format_duration(seconds: float) -> str:
    """Format seconds into human-readable string.

    Args:
        seconds: Time in seconds

    Returns:
        Formatted string (e.g., "1.23s", "123ms", "5m 32s")
    """
    if seconds < 0.001:
        return f"{seconds * 1000000:.0f}μs"
    elif seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    else:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"


class TimingTracker:
    """Track named timing intervals of one pipeline run."""

    def __init__(self):
        self.timings: Dict[str, float] = {}

    @contextmanager
    def track(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings[name] = time.perf_counter() - start

    def get(self, name: str) -> Optional[float]:
        return self.timings.get(name)

    def total_ms(self) -> int:
        return int(sum(self.timings.values()) * 1000)

    def summary(self) -> Dict[str, str]:
        return {name: format_duration(seconds) for name, seconds in self.timings.items()}

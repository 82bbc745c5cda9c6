"""Elapsed time and memory measurement for a pipeline run."""

import time
import tracemalloc
from typing import Callable, Optional


class PerformanceTracker:
    """
    Measures wall-clock time and, optionally, peak traced memory.

    Memory tracking uses tracemalloc, which is only started here if it is not
    already running, and is stopped again by the tracker that started it.
    """

    def __init__(self, track_memory: bool = True, now: Callable[[], float] = time.perf_counter):
        self.track_memory = track_memory
        self._now = now
        self._start: Optional[float] = None
        self._end: Optional[float] = None
        self._owns_tracemalloc = False
        self.memory_peak_bytes: Optional[int] = None

    def start(self) -> None:
        self._start = self._now()
        self._end = None
        if self.track_memory:
            if not tracemalloc.is_tracing():
                tracemalloc.start()
                self._owns_tracemalloc = True
            tracemalloc.reset_peak()

    def stop(self) -> None:
        if self._start is None or self._end is not None:
            return
        self._end = self._now()
        if self.track_memory and tracemalloc.is_tracing():
            _, peak = tracemalloc.get_traced_memory()
            self.memory_peak_bytes = peak
            if self._owns_tracemalloc:
                tracemalloc.stop()
                self._owns_tracemalloc = False

    @property
    def elapsed_seconds(self) -> float:
        if self._start is None:
            return 0.0
        end = self._end if self._end is not None else self._now()
        return end - self._start


def format_file_size(size: int) -> str:
    """Format a byte count as a human-readable string, e.g. ``1.5 KB``."""
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit_index = 0

    while value >= 1024 and unit_index < len(units) - 1:
        value /= 1024
        unit_index += 1

    return f"{round(value, 2):g} {units[unit_index]}"

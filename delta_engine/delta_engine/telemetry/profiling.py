"""Wall-clock timing for snapshot builds and diffs.

``@profile_operation(name)`` times a function with ``perf_counter_ns``, logs
the duration at DEBUG and records it in the process-wide
:class:`TimingCollector` so that ``--debug`` runs can report where time went::

    @profile_operation("snapshot.build")
    def build(self):
        ...
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_MAX_SAMPLES = 100


@dataclass(frozen=True)
class Timing:
    """One timed call."""

    operation: str
    duration_ms: float


class TimingCollector:
    """Thread-safe store of the most recent timings per operation."""

    _instance: TimingCollector | None = None
    _instance_lock = threading.Lock()

    def __init__(self, max_samples: int = _MAX_SAMPLES) -> None:
        self._max_samples = max_samples
        self._samples: dict[str, deque[Timing]] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> TimingCollector:
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = TimingCollector()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared collector (used by tests)."""
        with cls._instance_lock:
            cls._instance = None

    def record(self, timing: Timing) -> None:
        with self._lock:
            self._samples.setdefault(timing.operation, deque(maxlen=self._max_samples)).append(timing)

    def get_stats(self, operation: str) -> dict[str, Any] | None:
        """Return ``count``, ``mean_ms``, ``min_ms`` and ``max_ms`` for *operation*.

        ``None`` when the operation has never been recorded.
        """
        with self._lock:
            samples = self._samples.get(operation)
            if not samples:
                return None
            durations = [s.duration_ms for s in samples]

        return {
            "operation": operation,
            "count": len(durations),
            "mean_ms": round(sum(durations) / len(durations), 3),
            "min_ms": round(min(durations), 3),
            "max_ms": round(max(durations), 3),
        }

    def operations(self) -> list[str]:
        with self._lock:
            return sorted(self._samples)


def profile_operation(name: str) -> Callable[[F], F]:
    """Time every call of the decorated function under *name*."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_ns = time.perf_counter_ns()
            try:
                return func(*args, **kwargs)
            finally:
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
                TimingCollector.get_instance().record(Timing(operation=name, duration_ms=round(duration_ms, 3)))
                logger.debug("PROFILE %s: %.3f ms", name, duration_ms)

        return wrapper  # type: ignore[return-value]

    return decorator

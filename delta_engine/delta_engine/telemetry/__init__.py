"""Logging setup and operation timing."""

from __future__ import annotations

from delta_engine.telemetry.log_setup import JSONFormatter, configure_logging
from delta_engine.telemetry.profiling import Timing, TimingCollector, profile_operation

__all__ = [
    "JSONFormatter",
    "Timing",
    "TimingCollector",
    "configure_logging",
    "profile_operation",
]

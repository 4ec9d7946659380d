"""Snapshot comparison."""

from delta_engine.diff.closure import flatten_closure
from delta_engine.diff.package_diff import compute_package_diff

__all__ = [
    "compute_package_diff",
    "flatten_closure",
]

"""Snapshot construction from a package record source."""

from delta_engine.builder.snapshot_builder import SnapshotBuilder, build_snapshot, collapse_duplicates

__all__ = [
    "SnapshotBuilder",
    "build_snapshot",
    "collapse_duplicates",
]

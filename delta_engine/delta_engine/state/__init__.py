"""Snapshot persistence."""

from delta_engine.state.snapshot_store import (
    InvalidSnapshot,
    deserialize_snapshot,
    load_snapshot,
    save_snapshot,
    serialize_snapshot,
    validate_snapshot,
)

__all__ = [
    "InvalidSnapshot",
    "deserialize_snapshot",
    "load_snapshot",
    "save_snapshot",
    "serialize_snapshot",
    "validate_snapshot",
]

"""Persist snapshots as MessagePack files.

The on-disk form is the snapshot's JSON-mode dump wrapped in a small envelope
and encoded with MessagePack::

    {"format": "nixdelta-snapshot", "version": 1, "snapshot": {...}}

Loading validates the envelope and re-hydrates the frozen pydantic models, so
``deserialize_snapshot(serialize_snapshot(s)) == s`` for every snapshot.  Any
decode or validation failure surfaces as :class:`InvalidSnapshot`.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import msgpack
from pydantic import ValidationError

from delta_engine.models.snapshot import Snapshot

logger = logging.getLogger(__name__)

FORMAT_MARKER = "nixdelta-snapshot"
FORMAT_VERSION = 1


class InvalidSnapshot(Exception):
    """Raised when a snapshot is corrupt or violates the snapshot invariants."""


def validate_snapshot(snapshot: Snapshot, label: str = "snapshot") -> None:
    """Check the invariants the diff engine relies on.

    Raises
    ------
    InvalidSnapshot
        If *snapshot* is not a :class:`Snapshot` or lists the same top-level
        package name twice.
    """
    if not isinstance(snapshot, Snapshot):
        raise InvalidSnapshot(f"{label} is not a Snapshot (got {type(snapshot).__name__})")

    seen: set[str] = set()
    for pkg in snapshot.top_level_packages:
        if pkg.base_name in seen:
            raise InvalidSnapshot(f"{label} lists top-level package {pkg.base_name!r} more than once")
        seen.add(pkg.base_name)


def serialize_snapshot(snapshot: Snapshot) -> bytes:
    """Encode *snapshot* as MessagePack bytes."""
    payload = {
        "format": FORMAT_MARKER,
        "version": FORMAT_VERSION,
        "snapshot": snapshot.model_dump(mode="json"),
    }
    return msgpack.packb(payload, use_bin_type=True)


def deserialize_snapshot(data: bytes) -> Snapshot:
    """Decode bytes produced by :func:`serialize_snapshot`.

    Raises
    ------
    InvalidSnapshot
        If the bytes are not MessagePack, carry an unknown format marker or
        version, or do not validate against the snapshot schema.
    """
    try:
        payload: Any = msgpack.unpackb(data, raw=False)
    except (msgpack.UnpackException, ValueError) as exc:
        raise InvalidSnapshot(f"snapshot data is not valid MessagePack: {exc}") from exc

    if not isinstance(payload, dict) or payload.get("format") != FORMAT_MARKER:
        raise InvalidSnapshot("snapshot data has no nixdelta format marker")
    if payload.get("version") != FORMAT_VERSION:
        raise InvalidSnapshot(f"unsupported snapshot format version {payload.get('version')!r}")

    try:
        snapshot = Snapshot.model_validate(payload.get("snapshot"))
    except ValidationError as exc:
        raise InvalidSnapshot(f"snapshot data does not match the schema: {exc.error_count()} error(s)") from exc

    validate_snapshot(snapshot)
    return snapshot


def save_snapshot(snapshot: Snapshot, path: Path) -> Path:
    """Write *snapshot* to *path*, creating parent directories.

    The file is written to a temporary sibling and renamed into place so an
    interrupted save never leaves a truncated snapshot behind.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = serialize_snapshot(snapshot)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Saved snapshot with %d package(s) to %s", len(snapshot), path)
    return path


def load_snapshot(path: Path) -> Snapshot:
    """Read a snapshot written by :func:`save_snapshot`.

    Raises
    ------
    FileNotFoundError
        If no snapshot has been saved at *path*.
    InvalidSnapshot
        If the file is corrupt.
    """
    snapshot = deserialize_snapshot(path.read_bytes())
    logger.info("Loaded snapshot with %d package(s) from %s", len(snapshot), path)
    return snapshot

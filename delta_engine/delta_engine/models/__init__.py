"""Domain models for the nixdelta engine."""

from delta_engine.models.diff import DependencyUpdate, DiffReport, TopLevelUpdate
from delta_engine.models.package import PackageIdentity, PackageNode
from delta_engine.models.snapshot import Snapshot

__all__ = [
    "DependencyUpdate",
    "DiffReport",
    "PackageIdentity",
    "PackageNode",
    "Snapshot",
    "TopLevelUpdate",
]

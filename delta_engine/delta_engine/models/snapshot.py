"""Snapshot model capturing every system package at a point in time.

``captured_at`` is recorded for display and persistence; it never takes part
in diffing.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from delta_engine.models.package import PackageNode


class Snapshot(BaseModel):
    """Point-in-time capture of all top-level packages and their closures.

    ``top_level_packages`` keeps the order returned by the record source
    (registration time, newest first) so that reports are stable across runs.
    """

    model_config = ConfigDict(frozen=True)

    top_level_packages: tuple[PackageNode, ...] = Field(
        default=(),
        description="One entry per system-level package, in source order.",
    )
    captured_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when this snapshot was built.",
    )

    def by_name(self) -> dict[str, PackageNode]:
        """Index top-level packages by base name, preserving order."""
        return {pkg.base_name: pkg for pkg in self.top_level_packages}

    def __len__(self) -> int:
        return len(self.top_level_packages)

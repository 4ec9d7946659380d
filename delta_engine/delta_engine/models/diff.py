"""Diff models produced by comparing two package snapshots.

A :class:`DiffReport` lists version changes for system packages, the
dependency changes scoped to each of them, and the dependency changes shared
uniformly by every package that references them.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

from delta_engine.models.package import PackageIdentity


class DependencyUpdate(BaseModel):
    """A dependency whose version differs between the old and new closure."""

    model_config = ConfigDict(frozen=True)

    base_name: str = Field(..., min_length=1)
    old_version: str
    new_version: str


class TopLevelUpdate(BaseModel):
    """A system package that changed version or has dependency changes.

    ``version_changed`` is false when only the package's own dependencies
    moved; the entry then exists to carry ``local_dependency_updates``.
    """

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    old_version: str
    new_version: str
    local_dependency_updates: tuple[DependencyUpdate, ...] = Field(
        default=(),
        description="Changes confined to this package, alphabetical by name.",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def version_changed(self) -> bool:
        return self.old_version != self.new_version


class DiffReport(BaseModel):
    """Complete comparison between an old and a new snapshot."""

    model_config = ConfigDict(frozen=True)

    top_level_updates: tuple[TopLevelUpdate, ...] = Field(
        default=(),
        description="Changed system packages, in the new snapshot's order.",
    )
    global_dependency_updates: tuple[DependencyUpdate, ...] = Field(
        default=(),
        description="Dependency changes shared by every referencing package, alphabetical.",
    )
    newly_installed: tuple[PackageIdentity, ...] = Field(
        default=(),
        description="Packages present only in the new snapshot.",
    )
    removed: tuple[PackageIdentity, ...] = Field(
        default=(),
        description="Packages present only in the old snapshot.",
    )

    @property
    def package_update_count(self) -> int:
        """Number of system packages whose own version changed."""
        return sum(1 for upd in self.top_level_updates if upd.version_changed)

    def is_empty(self) -> bool:
        return not (self.top_level_updates or self.global_dependency_updates or self.newly_installed or self.removed)

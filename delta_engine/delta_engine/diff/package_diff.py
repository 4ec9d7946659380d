"""Compare two package snapshots and classify every version change.

Top-level packages are matched by base name.  For each matched pair the old
and new closures are flattened and compared; a dependency whose version moved
the same way under every package that references it is reported once as a
*global* update, anything else stays *local* to the package it changed under.

Output ordering is deterministic:

* top-level updates follow the new snapshot's order,
* global updates are alphabetical by base name,
* local updates are alphabetical within their owning package,
* newly installed packages follow the new snapshot's order, removed ones the
  old snapshot's order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from delta_engine.diff.closure import flatten_closure
from delta_engine.models.diff import DependencyUpdate, DiffReport, TopLevelUpdate
from delta_engine.models.package import PackageNode
from delta_engine.models.snapshot import Snapshot
from delta_engine.state.snapshot_store import validate_snapshot
from delta_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)


@dataclass
class _MatchedPackage:
    """A top-level package present in both snapshots."""

    old: PackageNode
    new: PackageNode
    old_closure: dict[str, str]
    new_closure: dict[str, str]

    def changed_dependencies(self) -> dict[str, tuple[str, str]]:
        return {
            name: (old_version, self.new_closure[name])
            for name, old_version in self.old_closure.items()
            if name in self.new_closure and self.new_closure[name] != old_version
        }

    def references(self, name: str) -> bool:
        return name in self.old_closure or name in self.new_closure

    def observation(self, name: str) -> tuple[str | None, str | None]:
        return self.old_closure.get(name), self.new_closure.get(name)


def _classify_global(
    matched: list[_MatchedPackage],
    changed_names: set[str],
    min_global_referrers: int,
) -> dict[str, tuple[str, str]]:
    """Return the changed names that moved identically under every referrer."""
    global_changes: dict[str, tuple[str, str]] = {}

    for name in changed_names:
        observations = [pkg.observation(name) for pkg in matched if pkg.references(name)]
        if len(observations) < min_global_referrers:
            continue

        first = observations[0]
        if first[0] is None or first[1] is None:
            continue
        if all(obs == first for obs in observations):
            global_changes[name] = (first[0], first[1])

    return global_changes


@profile_operation("diff.compute")
def compute_package_diff(
    old: Snapshot,
    new: Snapshot,
    min_global_referrers: int = 2,
) -> DiffReport:
    """Compute the full update report between *old* and *new*.

    Parameters
    ----------
    old:
        The previously saved snapshot.
    new:
        The current snapshot.
    min_global_referrers:
        Minimum number of distinct referencing packages for a dependency
        change to be classified as global.

    Returns
    -------
    DiffReport
        Empty when the snapshots are equivalent.

    Raises
    ------
    InvalidSnapshot
        If either snapshot lists a top-level name twice.
    ValueError
        If *min_global_referrers* is less than 1.
    """
    if min_global_referrers < 1:
        raise ValueError(f"min_global_referrers must be at least 1, got {min_global_referrers}")

    validate_snapshot(old, "old snapshot")
    validate_snapshot(new, "new snapshot")

    old_by_name = old.by_name()
    new_names = {pkg.base_name for pkg in new.top_level_packages}

    matched: list[_MatchedPackage] = []
    newly_installed = []
    for new_pkg in new.top_level_packages:
        old_pkg = old_by_name.get(new_pkg.base_name)
        if old_pkg is None:
            newly_installed.append(new_pkg.identity)
            continue
        matched.append(
            _MatchedPackage(
                old=old_pkg,
                new=new_pkg,
                old_closure=flatten_closure(old_pkg),
                new_closure=flatten_closure(new_pkg),
            )
        )

    removed = [pkg.identity for pkg in old.top_level_packages if pkg.base_name not in new_names]

    changes_per_package = [pkg.changed_dependencies() for pkg in matched]
    changed_names: set[str] = set()
    for changes in changes_per_package:
        changed_names.update(changes)

    global_changes = _classify_global(matched, changed_names, min_global_referrers)

    top_level_updates: list[TopLevelUpdate] = []
    for pkg, changes in zip(matched, changes_per_package):
        local = [
            DependencyUpdate(base_name=name, old_version=versions[0], new_version=versions[1])
            for name, versions in sorted(changes.items())
            if name not in global_changes
        ]
        if pkg.old.version == pkg.new.version and not local:
            continue
        top_level_updates.append(
            TopLevelUpdate(
                identity=pkg.new.identity,
                old_version=pkg.old.version,
                new_version=pkg.new.version,
                local_dependency_updates=tuple(local),
            )
        )

    report = DiffReport(
        top_level_updates=tuple(top_level_updates),
        global_dependency_updates=tuple(
            DependencyUpdate(base_name=name, old_version=versions[0], new_version=versions[1])
            for name, versions in sorted(global_changes.items())
        ),
        newly_installed=tuple(newly_installed),
        removed=tuple(removed),
    )

    logger.debug(
        "Diff: %d matched, %d package update(s), %d global, %d installed, %d removed",
        len(matched),
        report.package_update_count,
        len(report.global_dependency_updates),
        len(report.newly_installed),
        len(report.removed),
    )
    return report

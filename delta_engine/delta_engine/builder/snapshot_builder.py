"""Build package snapshots by walking a record source.

Starting from the source's top-level packages, each package's references are
fetched recursively and materialised as a tree of
:class:`~delta_engine.models.package.PackageNode` objects.  Every appearance of
a dependency becomes its own node, so two top-level packages never share a
subtree.

Rules applied while walking:

* Records the source flags as non-content (derivations, archives) are dropped.
* Records whose path cannot be parsed are skipped with a warning.
* A reference back to any ancestor on the current path is dropped, which
  keeps malformed or cyclic reference data from recursing forever.
* Within one sibling list, records sharing a base name are collapsed to the
  first (newest) one.  If two of them differ in version and were registered
  within ``duplicate_window_seconds`` of each other they most likely come from
  the same update and cannot be told apart, so the name is dropped entirely.
* Sibling order is the source order; nothing is re-sorted.

A :class:`~delta_engine.source.base.SourceUnavailable` raised by the source
aborts the build.  No partial snapshot is ever returned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from delta_engine.models.package import PackageNode
from delta_engine.models.snapshot import Snapshot
from delta_engine.parser.store_path import MalformedStorePath, ParsedStorePath, parse_store_path
from delta_engine.source.base import RawRecord, StoreRecordSource
from delta_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    """A record paired with its parsed identity and version."""

    record: RawRecord
    parsed: ParsedStorePath

    @property
    def name(self) -> str:
        return self.parsed.identity.base_name


def collapse_duplicates(entries: Iterable[_Entry], window_seconds: int) -> list[_Entry]:
    """Keep one entry per base name, dropping names that are ambiguous.

    The first entry seen for a name wins.  A later entry with a different
    version registered less than *window_seconds* apart marks the name as a
    duplicate, and every entry with that name is removed.
    """
    kept: dict[str, _Entry] = {}
    duplicates: set[str] = set()

    for entry in entries:
        if entry.name in duplicates:
            continue

        existing = kept.get(entry.name)
        if existing is None:
            kept[entry.name] = entry
            continue

        gap = abs(existing.record.registration_time - entry.record.registration_time)
        if gap < window_seconds and existing.parsed.version != entry.parsed.version:
            del kept[entry.name]
            duplicates.add(entry.name)

    return list(kept.values())


class SnapshotBuilder:
    """Materialise a :class:`Snapshot` from a :class:`StoreRecordSource`.

    Parameters
    ----------
    source:
        Where top-level packages and references come from.
    duplicate_window_seconds:
        Registration-time window used by :func:`collapse_duplicates`.
    max_depth:
        Deepest dependency level to fetch below a top-level package.  ``None``
        walks the full closure; ``1`` keeps direct dependencies only.  A
        dependency reached through several branches is copied into each, so
        a graph of stacked diamonds doubles in size with every layer.
    workers:
        Thread count for building independent top-level subtrees.  ``1``
        builds sequentially.
    """

    def __init__(
        self,
        source: StoreRecordSource,
        *,
        duplicate_window_seconds: int = 3600,
        max_depth: int | None = None,
        workers: int = 1,
    ) -> None:
        if max_depth is not None and max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {max_depth}")
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self._source = source
        self._window = duplicate_window_seconds
        self._max_depth = max_depth
        self._workers = workers
        self._children: dict[int, list[_Entry]] = {}

    # ------------------------------------------------------------------
    # Record handling
    # ------------------------------------------------------------------

    def _parse_records(self, records: Iterable[RawRecord]) -> list[_Entry]:
        entries: list[_Entry] = []
        for record in records:
            if not record.is_content_package:
                continue
            try:
                parsed = parse_store_path(record.path)
            except MalformedStorePath as exc:
                logger.warning("Skipping %s: %s", record.path, exc.reason, extra={"store_path": record.path})
                continue
            entries.append(_Entry(record=record, parsed=parsed))
        return collapse_duplicates(entries, self._window)

    def _children_of(self, record_id: int) -> list[_Entry]:
        # References are fetched once per record per build; shared
        # dependencies are still materialised as separate nodes.
        cached = self._children.get(record_id)
        if cached is None:
            cached = self._parse_records(self._source.list_direct_dependencies(record_id))
            self._children[record_id] = cached
        return cached

    def _build_node(self, entry: _Entry, ancestors: frozenset[int], depth: int) -> PackageNode:
        dependencies: list[PackageNode] = []

        if self._max_depth is None or depth < self._max_depth:
            path_ids = ancestors | {entry.record.id}
            children = self._children_of(entry.record.id)
            for child in children:
                if child.record.id in path_ids:
                    logger.debug("Dropping cyclic reference %s -> %s", entry.record.path, child.record.path)
                    continue
                dependencies.append(self._build_node(child, path_ids, depth + 1))

        return PackageNode(
            identity=entry.parsed.identity,
            version=entry.parsed.version,
            dependencies=tuple(dependencies),
        )

    def _build_top_level(self, entry: _Entry) -> PackageNode:
        return self._build_node(entry, frozenset(), 0)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @profile_operation("snapshot.build")
    def build(self, top_level: Iterable[RawRecord] | None = None) -> Snapshot:
        """Build a snapshot of every top-level package and its closure.

        Parameters
        ----------
        top_level:
            Records to treat as top-level packages.  Defaults to the source's
            :meth:`list_top_level_packages`.

        Returns
        -------
        Snapshot
            Top-level packages in source order, each owning its subtree.

        Raises
        ------
        SourceUnavailable
            If any source query fails.
        """
        self._children = {}
        records = self._source.list_top_level_packages() if top_level is None else list(top_level)
        entries = self._parse_records(records)

        if self._workers > 1 and len(entries) > 1:
            # map() yields results in input order regardless of completion order.
            with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="snapshot") as pool:
                packages = list(pool.map(self._build_top_level, entries))
        else:
            packages = [self._build_top_level(entry) for entry in entries]

        snapshot = Snapshot(top_level_packages=tuple(packages))
        logger.info(
            "Built snapshot: %d top-level package(s), %d dependency node(s)",
            len(packages),
            sum(pkg.closure_size() for pkg in packages),
        )
        return snapshot


def build_snapshot(
    source: StoreRecordSource,
    *,
    duplicate_window_seconds: int = 3600,
    max_depth: int | None = None,
    workers: int = 1,
) -> Snapshot:
    """Convenience wrapper around :meth:`SnapshotBuilder.build`."""
    builder = SnapshotBuilder(
        source,
        duplicate_window_seconds=duplicate_window_seconds,
        max_depth=max_depth,
        workers=workers,
    )
    return builder.build()

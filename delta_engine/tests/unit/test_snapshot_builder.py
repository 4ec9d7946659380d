"""Unit tests for delta_engine.builder.snapshot_builder."""

from __future__ import annotations

import logging

import pytest

from delta_engine.builder import SnapshotBuilder, build_snapshot, collapse_duplicates
from delta_engine.builder.snapshot_builder import _Entry
from delta_engine.parser import parse_store_path
from delta_engine.source import InMemorySource, RawRecord, SourceUnavailable

_HASH = "zzw3mjv8dcmrz4ran92pnyj97f05ff55"


def _rec(record_id: int, body: str, registered: int = 0, content: bool = True) -> RawRecord:
    return RawRecord(
        id=record_id,
        path=f"/nix/store/{_HASH}-{body}",
        registration_time=registered,
        is_content_package=content,
    )


def _names(nodes) -> list[str]:
    return [n.base_name for n in nodes]


# ---------------------------------------------------------------------------
# collapse_duplicates
# ---------------------------------------------------------------------------


class TestCollapseDuplicates:
    def _entry(self, record_id: int, body: str, registered: int) -> _Entry:
        rec = _rec(record_id, body, registered)
        return _Entry(record=rec, parsed=parse_store_path(rec.path))

    def test_first_entry_wins_outside_window(self):
        entries = [self._entry(1, "glibc-2.28", 10_000), self._entry(2, "glibc-2.27", 1_000)]
        kept = collapse_duplicates(entries, window_seconds=3600)
        assert [e.record.id for e in kept] == [1]

    def test_versions_within_window_drop_the_name(self):
        entries = [
            self._entry(1, "glibc-2.28", 5_000),
            self._entry(2, "glibc-2.27", 4_000),
            self._entry(3, "zlib-1.2.11", 3_000),
        ]
        kept = collapse_duplicates(entries, window_seconds=3600)
        assert [e.name for e in kept] == ["zlib"]

    def test_same_version_within_window_is_kept_once(self):
        entries = [self._entry(1, "glibc-2.28", 5_000), self._entry(2, "glibc-2.28-bin", 4_999)]
        kept = collapse_duplicates(entries, window_seconds=3600)
        assert [e.record.id for e in kept] == [1]

    def test_dropped_name_stays_dropped(self):
        entries = [
            self._entry(1, "glibc-2.28", 5_000),
            self._entry(2, "glibc-2.27", 4_000),
            self._entry(3, "glibc-2.26", 100),
        ]
        assert collapse_duplicates(entries, window_seconds=3600) == []

    def test_zero_window_never_drops(self):
        entries = [self._entry(1, "glibc-2.28", 5_000), self._entry(2, "glibc-2.27", 5_000)]
        kept = collapse_duplicates(entries, window_seconds=0)
        assert [e.record.id for e in kept] == [1]


# ---------------------------------------------------------------------------
# SnapshotBuilder
# ---------------------------------------------------------------------------


class TestSnapshotBuilder:
    def test_builds_tree_in_source_order(self):
        source = InMemorySource(
            records=[
                _rec(1, "fish-3.0.0", 300),
                _rec(2, "curl-7.64.0-bin", 200),
                _rec(10, "db-5.3.28", 50),
                _rec(11, "glibc-2.28", 40),
            ],
            top_level=[1, 2],
            references={1: [10, 11], 2: [11], 10: [11]},
        )
        snapshot = build_snapshot(source)

        assert _names(snapshot.top_level_packages) == ["fish", "curl"]
        fish, curl = snapshot.top_level_packages
        assert fish.version == "3.0.0"
        assert _names(fish.dependencies) == ["db", "glibc"]
        assert _names(fish.dependencies[0].dependencies) == ["glibc"]
        assert curl.identity.variant == "bin"
        assert _names(curl.dependencies) == ["glibc"]

    def test_shared_dependency_is_copied_per_branch(self):
        source = InMemorySource(
            records=[_rec(1, "a-1.0", 2), _rec(2, "b-1.0", 1), _rec(3, "c-1.0")],
            top_level=[1, 2],
            references={1: [3], 2: [3]},
        )
        a, b = build_snapshot(source).top_level_packages
        assert a.dependencies[0] == b.dependencies[0]
        assert a.dependencies[0] is not b.dependencies[0]

    def test_self_reference_terminates(self):
        source = InMemorySource(records=[_rec(1, "a-1.0")], top_level=[1], references={1: [1]})
        (a,) = build_snapshot(source).top_level_packages
        assert a.dependencies == ()

    def test_indirect_cycle_is_cut_at_the_back_edge(self):
        source = InMemorySource(
            records=[_rec(1, "a-1.0", 3), _rec(2, "b-1.0", 2), _rec(3, "c-1.0", 1)],
            top_level=[1],
            references={1: [2], 2: [3], 3: [1]},
        )
        (a,) = build_snapshot(source).top_level_packages
        b = a.dependencies[0]
        c = b.dependencies[0]
        assert (b.base_name, c.base_name) == ("b", "c")
        assert c.dependencies == ()

    def test_non_content_records_are_dropped(self):
        source = InMemorySource(
            records=[
                _rec(1, "a-1.0", 3),
                _rec(2, "a-1.0.drv", 2, content=False),
                _rec(3, "zlib-1.2.11", 1),
            ],
            top_level=[1, 2],
            references={1: [2, 3]},
        )
        snapshot = build_snapshot(source)
        assert _names(snapshot.top_level_packages) == ["a"]
        assert _names(snapshot.top_level_packages[0].dependencies) == ["zlib"]

    def test_malformed_paths_are_skipped_with_warning(self, caplog):
        source = InMemorySource(
            records=[_rec(1, "fix-static.patch", 2), _rec(2, "pcre-8.42", 1)],
            top_level=[1, 2],
        )
        with caplog.at_level(logging.WARNING, logger="delta_engine.builder.snapshot_builder"):
            snapshot = build_snapshot(source)

        assert _names(snapshot.top_level_packages) == ["pcre"]
        assert any("fix-static.patch" in r.getMessage() for r in caplog.records)
        assert caplog.records[0].store_path.endswith("fix-static.patch")

    def test_ambiguous_top_level_duplicates_are_dropped(self):
        source = InMemorySource(
            records=[_rec(1, "firefox-66.0", 1_000), _rec(2, "firefox-65.0", 500), _rec(3, "gcc-7.4.0", 10)],
            top_level=[1, 2, 3],
        )
        snapshot = build_snapshot(source)
        assert _names(snapshot.top_level_packages) == ["gcc"]

    def test_duplicate_window_is_configurable(self):
        source = InMemorySource(
            records=[_rec(1, "firefox-66.0", 1_000), _rec(2, "firefox-65.0", 500)],
            top_level=[1, 2],
        )
        snapshot = build_snapshot(source, duplicate_window_seconds=100)
        assert [p.version for p in snapshot.top_level_packages] == ["66.0"]

    def test_max_depth_limits_recursion(self):
        source = InMemorySource(
            records=[_rec(1, "a-1.0", 3), _rec(2, "b-1.0", 2), _rec(3, "c-1.0", 1)],
            top_level=[1],
            references={1: [2], 2: [3]},
        )
        (a,) = build_snapshot(source, max_depth=1).top_level_packages
        assert _names(a.dependencies) == ["b"]
        assert a.dependencies[0].dependencies == ()

    @staticmethod
    def _stacked_diamonds(layers: int) -> InMemorySource:
        # Top-level package 1 references left1 and right1; every leftN and
        # rightN references both packages of layer N + 1.
        records = [_rec(1, "top-1.0", 1_000)]
        references: dict[int, list[int]] = {}
        above = [1]
        for layer in range(1, layers + 1):
            pair = [10 * layer, 10 * layer + 1]
            records += [_rec(pair[0], f"left{layer}-1.0", 500 - layer), _rec(pair[1], f"right{layer}-1.0", 500 - layer)]
            for referrer in above:
                references[referrer] = pair
            above = pair
        return InMemorySource(records=records, top_level=[1], references=references)

    def test_stacked_diamonds_grow_exponentially(self):
        source = self._stacked_diamonds(6)
        (top,) = build_snapshot(source).top_level_packages
        assert top.closure_size() == 2**7 - 2
        # top + one lookup per distinct record
        assert source.queries == 1 + 1 + 12

    def test_max_depth_bounds_stacked_diamonds(self):
        (top,) = build_snapshot(self._stacked_diamonds(6), max_depth=2).top_level_packages
        assert top.closure_size() == 2 + 4

    def test_workers_preserve_order(self):
        records = [_rec(i, f"pkg{i}-1.{i}", 100 - i) for i in range(1, 21)]
        records.append(_rec(99, "glibc-2.28", 0))
        source = InMemorySource(
            records=records,
            top_level=range(1, 21),
            references={i: [99] for i in range(1, 21)},
        )
        sequential = build_snapshot(source)
        threaded = build_snapshot(source, workers=4)
        assert threaded.top_level_packages == sequential.top_level_packages

    def test_references_fetched_once_per_record(self):
        source = InMemorySource(
            records=[_rec(1, "a-1.0", 2), _rec(2, "b-1.0", 1), _rec(3, "c-1.0")],
            top_level=[1, 2],
            references={1: [3], 2: [3]},
        )
        build_snapshot(source)
        # top level + a + b + c
        assert source.queries == 4

    def test_explicit_top_level_records(self):
        source = InMemorySource(records=[_rec(1, "a-1.0"), _rec(2, "b-2.0")], top_level=[1])
        snapshot = SnapshotBuilder(source).build(top_level=[_rec(2, "b-2.0")])
        assert _names(snapshot.top_level_packages) == ["b"]

    def test_source_unavailable_aborts(self):
        source = InMemorySource(records=[_rec(1, "a-1.0")], top_level=[1])
        source.available = False
        with pytest.raises(SourceUnavailable):
            build_snapshot(source)

    @pytest.mark.parametrize("workers", [1, 4])
    @pytest.mark.parametrize("failing_id", [2, 11])
    def test_reference_failure_midway_aborts(self, workers, failing_id):
        source = InMemorySource(
            records=[
                _rec(1, "a-1.0", 30),
                _rec(2, "b-1.0", 20),
                _rec(3, "c-1.0", 10),
                _rec(10, "zlib-1.2.11", 5),
                _rec(11, "glibc-2.28", 4),
            ],
            top_level=[1, 2, 3],
            references={1: [10], 2: [11], 3: [10], 10: [11]},
        )
        source.failing_ids.add(failing_id)

        with pytest.raises(SourceUnavailable, match=f"record {failing_id}"):
            build_snapshot(source, workers=workers)

    def test_empty_source(self):
        source = InMemorySource(records=[], top_level=[])
        assert len(build_snapshot(source)) == 0

    @pytest.mark.parametrize("kwargs", [{"max_depth": 0}, {"workers": 0}])
    def test_rejects_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            SnapshotBuilder(InMemorySource(records=[], top_level=[]), **kwargs)

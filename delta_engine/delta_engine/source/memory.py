"""In-memory record source for tests and offline fixtures."""

from __future__ import annotations

from collections.abc import Iterable

from delta_engine.source.base import RawRecord, SourceUnavailable


class InMemorySource:
    """Record source backed by plain dictionaries.

    Parameters
    ----------
    records:
        Every known record.  Order does not matter; queries sort by
        registration time, newest first, like the database does.
    top_level:
        Ids of the records returned by :meth:`list_top_level_packages`.
    references:
        Mapping of referrer id to referenced ids.

    Setting ``available`` to false fails every query; ids added to
    ``failing_ids`` fail only their reference lookups.
    """

    def __init__(
        self,
        records: Iterable[RawRecord],
        top_level: Iterable[int],
        references: dict[int, list[int]] | None = None,
    ) -> None:
        self._records = {rec.id: rec for rec in records}
        self._top_level = list(top_level)
        self._references = {k: list(v) for k, v in (references or {}).items()}
        self.available = True
        self.failing_ids: set[int] = set()
        self.queries = 0

    def _lookup(self, ids: Iterable[int]) -> list[RawRecord]:
        found = [self._records[i] for i in ids if i in self._records]
        # sorted() is stable, so equal timestamps keep insertion order.
        return sorted(found, key=lambda rec: rec.registration_time, reverse=True)

    def _check_available(self) -> None:
        self.queries += 1
        if not self.available:
            raise SourceUnavailable("in-memory source marked unavailable")

    def list_top_level_packages(self) -> list[RawRecord]:
        self._check_available()
        return self._lookup(self._top_level)

    def list_direct_dependencies(self, record_id: int) -> list[RawRecord]:
        self._check_available()
        if record_id in self.failing_ids:
            raise SourceUnavailable(f"references of record {record_id} are unavailable")
        return self._lookup(self._references.get(record_id, []))

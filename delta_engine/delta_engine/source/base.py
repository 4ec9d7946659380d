"""Abstract interface for package record sources.

The snapshot builder only needs two queries: the set of top-level packages and
the direct references of one package.  Every source -- the Nix SQLite database
or an in-memory fixture -- satisfies :class:`StoreRecordSource` so that the
builder and diff engine stay independent of where records come from.
"""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field


class SourceUnavailable(Exception):
    """Raised when the record source cannot be opened or queried."""


class RawRecord(BaseModel):
    """One row from the record source.

    ``is_content_package`` is decided by the source.  Derivation files and
    archives are flagged false and never enter a snapshot.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    path: str = Field(..., min_length=1)
    registration_time: int = Field(
        default=0,
        description="Epoch seconds at which the path was registered.",
    )
    is_content_package: bool = True


class StoreRecordSource(Protocol):
    """Structural interface for package record sources.

    Implementations are not required to subclass this protocol.  Both methods
    return records ordered by registration time, newest first, and raise
    :class:`SourceUnavailable` when the backing store cannot be reached.
    """

    def list_top_level_packages(self) -> list[RawRecord]:
        """Return every candidate system-level package."""
        ...

    def list_direct_dependencies(self, record_id: int) -> list[RawRecord]:
        """Return the packages directly referenced by *record_id*.

        Parameters
        ----------
        record_id:
            The ``id`` of a record previously returned by this source.
        """
        ...

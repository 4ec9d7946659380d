"""Package record sources: the Nix database and an in-memory fixture."""

from delta_engine.source.base import RawRecord, SourceUnavailable, StoreRecordSource
from delta_engine.source.memory import InMemorySource
from delta_engine.source.nix_database import (
    DEFAULT_DATABASE_PATH,
    NixDatabaseSource,
    get_database_engine,
)

__all__ = [
    "DEFAULT_DATABASE_PATH",
    "InMemorySource",
    "NixDatabaseSource",
    "RawRecord",
    "SourceUnavailable",
    "StoreRecordSource",
    "get_database_engine",
]

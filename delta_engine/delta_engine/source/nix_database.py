"""Record source backed by the Nix store database.

The Nix daemon keeps every valid store path in a SQLite database
(``/nix/var/nix/db/db.sqlite``) with two tables of interest:

* ``ValidPaths`` -- one row per store path with its id, path, registration
  time and a content-address column (``ca``) that is set on ``.drv`` files and
  most fixed-output archives.
* ``Refs`` -- ``(referrer, reference)`` edges between store paths.

The database is opened read-only through a synchronous SQLAlchemy engine.  An
``immutable=1`` URI is tried first since it needs no write access to the
journal; if that fails, root may still open the file in plain read-only mode.

INVARIANT: no statement issued here modifies the database.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path
from urllib.parse import quote

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool

from delta_engine.source.base import RawRecord, SourceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = Path("/nix/var/nix/db/db.sqlite")

# Records flagged as content packages: not a derivation, not an archive, not
# a shell completions output.
_CONTENT_FLAG = """
    CASE
        WHEN path LIKE '%.drv' OR path LIKE '%.tar.%' OR path LIKE '%-completions' THEN 0
        ELSE 1
    END AS is_content
"""

# The ca column is set on .drv and (most) archive paths; shell completions and
# tarballs without ca are excluded by name.
_SELECT_SYSTEM_STORES = text(
    f"""
    SELECT id, path, registrationTime, {_CONTENT_FLAG}
    FROM ValidPaths
    WHERE ca IS NULL
      AND path NOT LIKE '%-completions'
      AND path NOT LIKE '%.tar.%'
    ORDER BY registrationTime DESC
    """
)

_SELECT_STORE_DEPS = text(
    f"""
    SELECT id, path, registrationTime, {_CONTENT_FLAG}
    FROM ValidPaths
    WHERE ca IS NULL
      AND id != :store_id
      AND id IN (SELECT reference FROM Refs WHERE referrer = :store_id)
    ORDER BY registrationTime DESC
    """
)


def _is_root_user() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def _sqlite_uri(db_path: Path, immutable: bool) -> str:
    """SQLite ``file:`` URI for *db_path*, percent-encoded so that `?`, `#` and `%` stay in the path."""
    params = "mode=ro&immutable=1" if immutable else "mode=ro"
    return f"file:{quote(str(db_path))}?{params}"


def _create_engine(uri: str) -> Engine:
    # The URI is handed to sqlite3 as is; SQLAlchemy never re-parses the path.
    return create_engine(
        "sqlite://",
        creator=lambda: sqlite3.connect(uri, uri=True, check_same_thread=False),
        poolclass=QueuePool,
        echo=False,
    )


def get_database_engine(db_path: Path | str = DEFAULT_DATABASE_PATH) -> Engine:
    """Open a read-only SQLAlchemy engine on the Nix database.

    Parameters
    ----------
    db_path:
        Location of ``db.sqlite``.

    Returns
    -------
    Engine
        An engine whose connections have been verified to reach the
        ``ValidPaths`` table.

    Raises
    ------
    SourceUnavailable
        If the file is missing or neither open mode succeeds.
    """
    db_path = Path(db_path)
    if not db_path.is_file():
        raise SourceUnavailable(f"Nix database not found at {db_path}")

    attempts = [True] if not _is_root_user() else [True, False]
    last_error: Exception | None = None

    for immutable in attempts:
        url = _sqlite_uri(db_path, immutable)
        engine = _create_engine(url)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1 FROM ValidPaths LIMIT 1"))
        except SQLAlchemyError as exc:
            last_error = exc
            engine.dispose()
            logger.debug("Opening %s failed: %s", url, exc)
            continue
        logger.info("Opened Nix database: %s", url)
        return engine

    if not _is_root_user():
        raise SourceUnavailable(
            f"cannot open the Nix database at {db_path} read-only; run as root "
            "or build SQLite with URI support (SQLITE_USE_URI=1)"
        ) from last_error
    raise SourceUnavailable(f"cannot open the Nix database at {db_path}: {last_error}") from last_error


class NixDatabaseSource:
    """:class:`~delta_engine.source.base.StoreRecordSource` over ``db.sqlite``.

    Each query checks out its own connection, so a single instance can be
    shared by builder worker threads.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def open(cls, db_path: Path | str = DEFAULT_DATABASE_PATH) -> NixDatabaseSource:
        return cls(get_database_engine(db_path))

    def _query(self, statement: object, params: dict[str, int] | None = None) -> list[RawRecord]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(statement, params or {}).all()  # type: ignore[call-overload]
        except SQLAlchemyError as exc:
            raise SourceUnavailable(f"Nix database query failed: {exc}") from exc

        return [
            RawRecord(
                id=row.id,
                path=row.path,
                registration_time=row.registrationTime or 0,
                is_content_package=bool(row.is_content),
            )
            for row in rows
        ]

    def list_top_level_packages(self) -> list[RawRecord]:
        return self._query(_SELECT_SYSTEM_STORES)

    def list_direct_dependencies(self, record_id: int) -> list[RawRecord]:
        return self._query(_SELECT_STORE_DEPS, {"store_id": record_id})

    def close(self) -> None:
        self._engine.dispose()

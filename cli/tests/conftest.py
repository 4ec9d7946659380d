"""Shared fixtures for CLI tests.

Every test runs in its own temporary directory with ``NIXDELTA_STATE_DIR``
pointing inside it, so no test ever touches the real user data directory or
picks up a stray ``.env`` file.  The global options callback reconfigures the
root logger on each invocation; the original handlers are restored afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import pytest
from rich.console import Console
from sqlalchemy import Column, Integer, MetaData, Table, Text, create_engine

STORE_HASH = "zzw3mjv8dcmrz4ran92pnyj97f05ff55"

_metadata = MetaData()

_valid_paths = Table(
    "ValidPaths",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("path", Text, nullable=False),
    Column("registrationTime", Integer, nullable=False),
    Column("ca", Text),
)

_refs = Table(
    "Refs",
    _metadata,
    Column("referrer", Integer, primary_key=True),
    Column("reference", Integer, primary_key=True),
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for key in ("NIXDELTA_DEBUG", "NIXDELTA_DATABASE_PATH", "NIXDELTA_MIN_GLOBAL_REFERRERS", "NIXDELTA_MAX_DEPTH"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("NIXDELTA_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.chdir(tmp_path)
    # Wide enough that no message or report line wraps.
    monkeypatch.setattr("cli.app.console", Console(stderr=True, width=200))

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def make_nix_db(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a miniature Nix database.

    ``packages`` maps a top-level store path body (``"fish-3.0.0"``) to the
    bodies of its direct dependencies.  Registration times decrease in
    insertion order so that the database returns packages in that order.
    """

    def _make(name: str, packages: dict[str, list[str]]) -> Path:
        db_path = tmp_path / f"{name}.sqlite"
        ids: dict[str, int] = {}
        for body in list(packages) + [d for deps in packages.values() for d in deps]:
            ids.setdefault(body, len(ids) + 1)

        engine = create_engine(f"sqlite:///{db_path}")
        _metadata.create_all(engine)
        with engine.begin() as conn:
            conn.execute(
                _valid_paths.insert(),
                [
                    {"id": i, "path": f"/nix/store/{STORE_HASH}-{body}", "registrationTime": 1_000 - i, "ca": None}
                    for body, i in ids.items()
                ],
            )
            edges = [{"referrer": ids[pkg], "reference": ids[dep]} for pkg, deps in packages.items() for dep in deps]
            if edges:
                conn.execute(_refs.insert(), edges)
        engine.dispose()
        return db_path

    return _make

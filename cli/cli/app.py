"""nixdelta CLI application -- Typer-based interface.

Provides commands to save a snapshot of the system packages, diff the live
system against it, compare two saved snapshots and list a saved snapshot.
Human-readable output goes to *stderr* via Rich; ``--json`` writes the
machine-readable report to *stdout* so that pipelines can compose cleanly.

Exit codes: ``0`` success, ``1`` no saved snapshot, ``3`` fatal error.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from pydantic import ValidationError
from rich.console import Console

from cli.display import display_package_diff, display_snapshot

if TYPE_CHECKING:
    from delta_engine.config import Settings
    from delta_engine.models.diff import DiffReport
    from delta_engine.models.snapshot import Snapshot

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="nixdelta",
    help="nixdelta - show what changed in your Nix system packages since the last saved snapshot",
    no_args_is_help=True,
)
console = Console(stderr=True)

EXIT_NO_STATE = 1
EXIT_FATAL = 3

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_debug: bool = False
_workers: int | None = None
_max_depth: int | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable DEBUG logging, including operation timings.",
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        min=1,
        help="Threads used to build top-level package subtrees.",
    ),
    max_depth: int | None = typer.Option(
        None,
        "--max-depth",
        min=1,
        help=(
            "Deepest dependency level to record below each package. Unbounded by default; "
            "shared dependencies are copied per branch, so set this on large closures."
        ),
    ),
) -> None:
    """Global options applied to every command."""
    from delta_engine.telemetry.log_setup import configure_logging

    global _json_output, _debug, _workers, _max_depth  # noqa: PLW0603
    _json_output = json_mode
    _debug = debug
    _workers = workers
    _max_depth = max_depth

    configure_logging(_load_settings())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(**overrides: Any) -> Settings:
    """Settings from the environment, overridden by global and command options."""
    from delta_engine.config import load_settings

    try:
        return load_settings(
            debug=True if _debug else None,
            build_workers=_workers,
            max_depth=_max_depth,
            **overrides,
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=EXIT_FATAL) from exc


def _write_json(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n")


def _load_saved(path: Path) -> Snapshot:
    """Load a saved snapshot, exiting with a helpful message on failure."""
    from delta_engine.state import InvalidSnapshot, load_snapshot

    try:
        return load_snapshot(path)
    except FileNotFoundError as exc:
        console.print(f"[yellow]No saved snapshot at {path}. Run [bold]nixdelta save[/bold] first.[/yellow]")
        raise typer.Exit(code=EXIT_NO_STATE) from exc
    except InvalidSnapshot as exc:
        console.print(f"[red]Saved snapshot {path} is unreadable: {exc}[/red]")
        console.print("[dim]Re-create it with [bold]nixdelta save[/bold].[/dim]")
        raise typer.Exit(code=EXIT_FATAL) from exc
    except OSError as exc:
        console.print(f"[red]Cannot read {path}: {exc}[/red]")
        raise typer.Exit(code=EXIT_FATAL) from exc


def _build_current(settings: Settings, db_path: Path) -> Snapshot:
    """Build a snapshot of the live system from the Nix database."""
    from delta_engine.builder import build_snapshot
    from delta_engine.source import NixDatabaseSource, SourceUnavailable

    try:
        source = NixDatabaseSource.open(db_path)
        try:
            return build_snapshot(
                source,
                duplicate_window_seconds=settings.duplicate_window_seconds,
                max_depth=settings.max_depth,
                workers=settings.build_workers,
            )
        finally:
            source.close()
    except SourceUnavailable as exc:
        console.print(f"[red]Cannot read package records: {exc}[/red]")
        raise typer.Exit(code=EXIT_FATAL) from exc


def _report(report: DiffReport) -> None:
    if _json_output:
        _write_json(report.model_dump(mode="json"))
    else:
        display_package_diff(console, report)


def _diff(old: Snapshot, new: Snapshot, min_global: int) -> DiffReport:
    from delta_engine.diff import compute_package_diff
    from delta_engine.state import InvalidSnapshot

    try:
        return compute_package_diff(old, new, min_global_referrers=min_global)
    except InvalidSnapshot as exc:
        console.print(f"[red]Cannot compare snapshots: {exc}[/red]")
        raise typer.Exit(code=EXIT_FATAL) from exc


# ---------------------------------------------------------------------------
# save
# ---------------------------------------------------------------------------


@app.command()
def save(
    db: Path | None = typer.Option(
        None,
        "--db",
        help="Path to the Nix database. Defaults to NIXDELTA_DATABASE_PATH or /nix/var/nix/db/db.sqlite.",
    ),
    state_file: Path | None = typer.Option(
        None,
        "--state-file",
        help="Where to write the snapshot. Defaults to the nixdelta data directory.",
    ),
) -> None:
    """Snapshot the current system packages for later comparison.

    Shared dependencies are copied under every package that references them,
    so densely interconnected closures can produce very large snapshots.
    Bound the walk with the global --max-depth option or NIXDELTA_MAX_DEPTH.
    """
    from delta_engine.state import save_snapshot

    settings = _load_settings()
    target = state_file or settings.state_file
    snapshot = _build_current(settings, db or settings.database_path)

    try:
        save_snapshot(snapshot, target)
    except OSError as exc:
        console.print(f"[red]Failed to write snapshot to {target}: {exc}[/red]")
        raise typer.Exit(code=EXIT_FATAL) from exc

    if _json_output:
        _write_json(
            {
                "state_file": str(target),
                "packages": len(snapshot),
                "captured_at": snapshot.captured_at.isoformat(),
            }
        )
    else:
        console.print(f"Saved [bold]{len(snapshot)}[/bold] package(s) to [bold]{target}[/bold]")


# ---------------------------------------------------------------------------
# diff
# ---------------------------------------------------------------------------


@app.command()
def diff(
    db: Path | None = typer.Option(
        None,
        "--db",
        help="Path to the Nix database. Defaults to NIXDELTA_DATABASE_PATH or /nix/var/nix/db/db.sqlite.",
    ),
    state_file: Path | None = typer.Option(
        None,
        "--state-file",
        help="Saved snapshot to compare against.",
    ),
    min_global: int | None = typer.Option(
        None,
        "--min-global",
        min=1,
        help="Referencing packages needed before a shared change is reported as global.",
    ),
) -> None:
    """Show package updates since the saved snapshot."""
    settings = _load_settings(min_global_referrers=min_global)
    old = _load_saved(state_file or settings.state_file)
    new = _build_current(settings, db or settings.database_path)
    _report(_diff(old, new, settings.min_global_referrers))


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------


@app.command()
def compare(
    old_path: Path = typer.Argument(..., help="The older saved snapshot.", dir_okay=False),
    new_path: Path = typer.Argument(..., help="The newer saved snapshot.", dir_okay=False),
    min_global: int | None = typer.Option(
        None,
        "--min-global",
        min=1,
        help="Referencing packages needed before a shared change is reported as global.",
    ),
) -> None:
    """Compare two saved snapshots without reading the Nix database."""
    settings = _load_settings(min_global_referrers=min_global)
    old = _load_saved(old_path)
    new = _load_saved(new_path)
    _report(_diff(old, new, settings.min_global_referrers))


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@app.command()
def show(
    state_file: Path | None = typer.Option(
        None,
        "--state-file",
        help="Saved snapshot to list. Defaults to the nixdelta data directory.",
    ),
) -> None:
    """List the packages recorded in a saved snapshot."""
    settings = _load_settings()
    snapshot = _load_saved(state_file or settings.state_file)

    if _json_output:
        _write_json(snapshot.model_dump(mode="json"))
    else:
        display_snapshot(console, snapshot)

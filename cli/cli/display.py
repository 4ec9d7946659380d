"""Rich output formatting for the nixdelta CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.

Package names and versions come straight from store paths and may contain
square brackets, so everything is assembled as :class:`rich.text.Text`
rather than console markup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from delta_engine.models.diff import DependencyUpdate, DiffReport, TopLevelUpdate
    from delta_engine.models.snapshot import Snapshot


# ---------------------------------------------------------------------------
# Styles
# ---------------------------------------------------------------------------

NAME_STYLE = "blue"
OLD_VERSION_STYLE = "red"
NEW_VERSION_STYLE = "green"
CHANGED_CHAR_STYLE = "bold underline bright_green"
DEP_MARKER_STYLE = "yellow"
COUNT_STYLE = "blue"


# ---------------------------------------------------------------------------
# Version formatting
# ---------------------------------------------------------------------------


def highlight_version(old: str, new: str) -> Text:
    """Render *new* with every character that differs from *old* emphasised.

    Characters are compared position by position; anything past the end of
    *old* counts as changed.
    """
    text = Text()
    for idx, ch in enumerate(new):
        unchanged = idx < len(old) and old[idx] == ch
        text.append(ch, style=NEW_VERSION_STYLE if unchanged else CHANGED_CHAR_STYLE)
    return text


def format_version_change(old: str, new: str) -> Text:
    """``old -> new`` with the old version in red and the new one highlighted."""
    text = Text(old, style=OLD_VERSION_STYLE)
    text.append(" -> ")
    text.append_text(highlight_version(old, new))
    return text


def _count_line(count: int, label: str) -> Text:
    text = Text(str(count), style=COUNT_STYLE)
    text.append(f" {label}")
    return text


def _dependency_line(dep: DependencyUpdate, marker: bool) -> Text:
    text = Text()
    if marker:
        text.append("^", style=DEP_MARKER_STYLE)
        text.append(" ")
    text.append(dep.base_name, style=NAME_STYLE)
    text.append(": ")
    text.append_text(format_version_change(dep.old_version, dep.new_version))
    return text


def _package_line(update: TopLevelUpdate) -> Text:
    text = Text(update.identity.display_name, style=NAME_STYLE)
    if update.version_changed:
        text.append(": ")
        text.append_text(format_version_change(update.old_version, update.new_version))
    return text


# ---------------------------------------------------------------------------
# Diff report
# ---------------------------------------------------------------------------


def display_package_diff(console: Console, report: DiffReport) -> None:
    """Render a diff report.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    report:
        The report produced by ``compute_package_diff``.
    """
    console.print(_count_line(len(report.top_level_updates), "package update(s)"))
    console.print()

    for update in report.top_level_updates:
        console.print(_package_line(update))
        for dep in update.local_dependency_updates:
            console.print(_dependency_line(dep, marker=True))

    console.print()
    console.print(_count_line(len(report.global_dependency_updates), "global dependency update(s)"))
    console.print()

    for dep in report.global_dependency_updates:
        console.print(_dependency_line(dep, marker=False))

    if report.newly_installed:
        console.print()
        console.print(_count_line(len(report.newly_installed), "newly installed package(s)"))
        for identity in report.newly_installed:
            console.print(Text(f"+ {identity.display_name}", style="green"))

    if report.removed:
        console.print()
        console.print(_count_line(len(report.removed), "removed package(s)"))
        for identity in report.removed:
            console.print(Text(f"- {identity.display_name}", style="red"))


# ---------------------------------------------------------------------------
# Snapshot listing
# ---------------------------------------------------------------------------


def display_snapshot(console: Console, snapshot: Snapshot) -> None:
    """Render the top-level packages of a saved snapshot as a table."""
    if not snapshot.top_level_packages:
        console.print("[dim]Snapshot contains no packages.[/dim]")
        return

    table = Table(
        title=f"Snapshot captured {snapshot.captured_at:%Y-%m-%d %H:%M:%S %Z}",
        show_lines=False,
        pad_edge=True,
        expand=False,
    )
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Package", style="bold")
    table.add_column("Version")
    table.add_column("Dependencies", justify="right")

    for idx, pkg in enumerate(snapshot.top_level_packages, start=1):
        table.add_row(
            str(idx),
            Text(pkg.identity.display_name),
            Text(pkg.version),
            str(pkg.closure_size()),
        )

    console.print(table)
    console.print(f"\n[bold]{len(snapshot)}[/bold] package(s)")

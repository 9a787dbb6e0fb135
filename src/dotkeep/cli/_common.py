"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the ``--home`` option, error
handling, the per-command workspace and diff rendering.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.text import Text

from ..config import backup_dir, load_config
from ..diff import DiffStatus, FileDiff, LineKind
from ..errors import DotkeepError, NotInitialized
from ..manifest import is_initialized
from ..models import DotkeepConfig
from ..paths import dotkeep_home
from ..snapshots import SnapshotIndex
from ..store import Store
from ..writer import BackupGuardedWriter, WriteAction

console = Console()

home_option = click.option(
    "--home",
    default=None,
    type=click.Path(),
    help="dotkeep home directory (default: $DOTKEEP_HOME or ~/.config/dotkeep).",
)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Print a ``DotkeepError`` in red and exit with status 1."""
    try:
        yield
    except DotkeepError as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise SystemExit(1)


@dataclass
class Workspace:
    """Everything one command invocation works with."""

    home: Path
    config: DotkeepConfig
    store: Store
    index: SnapshotIndex
    writer: BackupGuardedWriter

    @property
    def allowed_roots(self) -> list[Path]:
        return [self.home]


@contextmanager
def open_workspace(home: Optional[str]) -> Iterator[Workspace]:
    """Open the store of an initialized home for one command.

    Raises:
        NotInitialized: If ``dotkeep init`` was never run for ``home``.
    """
    home_path = dotkeep_home(home)
    if not is_initialized(home_path):
        raise NotInitialized(str(home_path))
    config = load_config(home_path)
    with Store.open(home_path) as store:
        yield Workspace(
            home=home_path,
            config=config,
            store=store,
            index=SnapshotIndex(store),
            writer=BackupGuardedWriter(backup_dir(home_path, config)),
        )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

_LINE_STYLES = {
    LineKind.HEADER: "bold",
    LineKind.HUNK: "cyan",
    LineKind.ADD: "green",
    LineKind.REMOVE: "red",
    LineKind.CONTEXT: "",
}

_STATUS_LABELS = {
    DiffStatus.UNCHANGED: "[dim]unchanged[/]",
    DiffStatus.MODIFIED: "[yellow]modified[/]",
    DiffStatus.NO_BASELINE: "[cyan]no baseline[/]",
    DiffStatus.MISSING: "[red]missing[/]",
    DiffStatus.BINARY: "[magenta]binary, differs[/]",
    DiffStatus.ERROR: "[red]unreadable[/]",
}


def print_diff(diff: FileDiff) -> None:
    """Print one file diff with a status line and colored hunks."""
    label = _STATUS_LABELS.get(diff.status, diff.status.value)
    console.print(f"[bold]{escape(diff.file_path)}[/]  {label}")
    if diff.old_label or diff.new_label:
        console.print(f"  [dim]{diff.old_label} -> {diff.new_label}[/]")
    if diff.error:
        console.print(f"  [red]{escape(diff.error)}[/]")
    for line in diff.lines:
        console.print(Text(line.text, style=_LINE_STYLES[line.kind]))
    if diff.lines:
        console.print(f"  [green]+{diff.additions}[/] [red]-{diff.deletions}[/]")


def action_label(action: WriteAction) -> str:
    """Map a writer action to a Rich-formatted label."""
    return {
        WriteAction.CREATE: "[green]create[/]",
        WriteAction.ALREADY_CORRECT: "[dim]ok[/]",
        WriteAction.RELINK: "[cyan]relink[/]",
        WriteAction.BACKUP_AND_REPLACE: "[yellow]backup+replace[/]",
        WriteAction.SKIP: "[red]skip[/]",
    }.get(action, action.value)

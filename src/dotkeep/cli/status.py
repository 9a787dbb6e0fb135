"""Status command: which tracked paths are present, missing or dangling."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from ..manifest import load_manifest
from ..paths import PathState, dotkeep_home, path_state
from ._common import console, handle_errors, home_option

_STATE_LABELS = {
    PathState.PRESENT: "[green]ok[/]",
    PathState.LINKED: "[cyan]linked[/]",
    PathState.BROKEN_LINK: "[red]broken link[/]",
    PathState.MISSING: "[yellow]missing[/]",
}

_HEALTHY = {PathState.PRESENT, PathState.LINKED}


def register_status_commands(main: click.Group) -> None:
    """Register the status command."""

    @main.command()
    @click.argument("tool", required=False)
    @home_option
    def status(tool: Optional[str], home: str):
        """Check that every tracked path is still on disk.

        Examples:

            dotkeep status

            dotkeep status nvim
        """
        home_path = dotkeep_home(home)
        with handle_errors():
            manifest = load_manifest(home_path)
            selected = manifest.select([tool] if tool else None)

        if not selected:
            console.print("\n[dim]No tools tracked. Add one with: dotkeep add TOOL -p PATH[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Tool", style="cyan")
        table.add_column("Path")
        table.add_column("State")

        warnings: list[str] = []
        for name, entry in selected.items():
            states = [(raw, path_state(raw)) for raw in entry.config_paths]
            healthy = sum(1 for _, state in states if state in _HEALTHY)
            for i, (raw, state) in enumerate(states):
                table.add_row(name if i == 0 else "", escape(raw), _STATE_LABELS[state])
                if state not in _HEALTHY:
                    warnings.append(f"{name}: {state.value.replace('-', ' ')} {raw}")
            if not states:
                table.add_row(name, "[dim]no paths[/]", "")
            elif healthy < len(states):
                table.add_row("", f"[dim]{healthy}/{len(states)} present[/]", "")

        console.print(f"\n[bold]{len(selected)}[/] tool(s):\n")
        console.print(table)
        if warnings:
            console.print("\n[yellow bold]Warnings:[/]")
            for w in warnings:
                console.print(f"  [yellow]!![/] {escape(w)}")
        else:
            console.print("\n[green]All tracked paths present.[/]")
        console.print()

"""Tool catalog commands: init, add, remove, list."""

from __future__ import annotations

import click
from rich.markup import escape
from rich.table import Table

from ..config import save_config
from ..manifest import init_home, load_manifest, save_manifest
from ..models import DotkeepConfig, ToolEntry
from ..paths import check_path_safety, contract_tilde, dotkeep_home, expand_tilde
from ._common import console, handle_errors, home_option


def register_track_commands(main: click.Group) -> None:
    """Register init, add, remove and list."""

    @main.command()
    @home_option
    def init(home: str):
        """Create the dotkeep home with an empty manifest.

        Examples:

            dotkeep init

            dotkeep init --home /tmp/dotkeep-test
        """
        home_path = dotkeep_home(home)
        with handle_errors():
            if not init_home(home_path):
                console.print(f"[yellow]Already initialized:[/] {home_path}")
                return
            save_config(home_path, DotkeepConfig())
        console.print(f"[green]Initialized[/] dotkeep home at [cyan]{home_path}[/]")

    @main.command()
    @click.argument("tool")
    @click.option(
        "--path", "-p", "paths", multiple=True, required=True,
        help="Config file or directory to track (repeatable).",
    )
    @click.option("--tier", default=2, type=click.IntRange(1, 3), show_default=True,
                  help="Metadata tier for the tool.")
    @home_option
    def add(tool: str, paths: tuple[str, ...], tier: int, home: str):
        """Start tracking a tool's config paths.

        Examples:

            dotkeep add tmux -p ~/.tmux.conf

            dotkeep add nvim -p ~/.config/nvim/init.lua -p ~/.config/nvim/lua
        """
        home_path = dotkeep_home(home)
        with handle_errors():
            manifest = load_manifest(home_path)
            portable = []
            for raw in paths:
                local = expand_tilde(raw).absolute()
                check_path_safety(local)
                if not local.exists():
                    console.print(f"[yellow]Warning:[/] {escape(raw)} does not exist yet")
                portable.append(contract_tilde(local))
            manifest.add_tool(tool, ToolEntry(tier=tier, config_paths=portable))
            save_manifest(home_path, manifest)

        console.print(f"[green]Tracking[/] [bold]{tool}[/] ({len(portable)} path(s))")
        for p in portable:
            console.print(f"  [dim]{escape(p)}[/]")

    @main.command()
    @click.argument("tool")
    @home_option
    def remove(tool: str, home: str):
        """Stop tracking a tool. Its snapshot history is kept."""
        home_path = dotkeep_home(home)
        with handle_errors():
            manifest = load_manifest(home_path)
            manifest.remove_tool(tool)
            save_manifest(home_path, manifest)
        console.print(f"[green]Removed[/] [bold]{tool}[/] from the manifest")

    @main.command("list")
    @home_option
    def list_tools(home: str):
        """List tracked tools."""
        home_path = dotkeep_home(home)
        with handle_errors():
            manifest = load_manifest(home_path)

        if not manifest.tools:
            console.print("\n[dim]No tools tracked. Add one with: dotkeep add TOOL -p PATH[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Tool", style="cyan")
        table.add_column("Tier", justify="right")
        table.add_column("Paths")
        table.add_column("Last snapshot", style="dim")

        for name, entry in sorted(manifest.tools.items()):
            last = entry.last_snapshot.astimezone().strftime("%Y-%m-%d %H:%M") if entry.last_snapshot else "never"
            table.add_row(name, str(entry.tier), escape(", ".join(entry.config_paths)), last)

        console.print(f"\n[bold]{len(manifest.tools)}[/] tool(s):\n")
        console.print(table)
        console.print()

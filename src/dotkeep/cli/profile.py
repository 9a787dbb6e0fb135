"""Profile commands: save, load, list, delete."""

from __future__ import annotations

import click
from rich.markup import escape
from rich.table import Table

from ..manifest import load_manifest, save_manifest
from ..profiles import ProfileManager
from ._common import action_label, console, handle_errors, home_option, open_workspace


def register_profile_commands(main: click.Group) -> None:
    """Register the profile command group."""

    @main.group()
    def profile():
        """Profiles: named sets of config contents to switch between.

        A profile captures every tracked file. Loading one restores
        them, snapshotting and backing up the current files first.
        """

    @profile.command("save")
    @click.argument("name")
    @home_option
    def profile_save(name: str, home: str):
        """Save the current tracked files as profile NAME."""
        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            manager = ProfileManager(ws.home, ws.index, ws.writer, ws.allowed_roots)
            meta = manager.save(manifest, name)

        console.print(
            f"[green]Saved profile[/] [bold]{name}[/] "
            f"({len(meta.tools)} tool(s), {len(meta.files)} file(s))"
        )

    @profile.command("load")
    @click.argument("name")
    @click.option("--add-untracked", is_flag=True, help="Also track tools the manifest lacks.")
    @click.option("--dry-run", is_flag=True, help="Show what would happen, change nothing.")
    @home_option
    def profile_load(name: str, add_untracked: bool, dry_run: bool, home: str):
        """Restore the files saved in profile NAME.

        Examples:

            dotkeep profile load work --dry-run

            dotkeep profile load laptop --add-untracked
        """
        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            manager = ProfileManager(ws.home, ws.index, ws.writer, ws.allowed_roots)
            report = manager.load(manifest, name, add_untracked=add_untracked, dry_run=dry_run)
            if report.tools_added and not dry_run:
                save_manifest(ws.home, manifest)

        console.print(f"\n[bold]Profile {name}[/]")
        for o in report.outcomes:
            line = f"  {action_label(o.action)}  {escape(str(o.target))}"
            if o.error:
                line += f"  [red]{escape(o.error)}[/]"
            console.print(line)
        if report.tools_added:
            console.print(f"[cyan]Tracking new tools:[/] {', '.join(report.tools_added)}")
        if report.skipped_tools:
            console.print(
                f"[yellow]Skipped untracked tools:[/] {', '.join(report.skipped_tools)} "
                "[dim](use --add-untracked)[/]"
            )

        if dry_run:
            console.print("[yellow]Dry run, nothing changed.[/]\n")
        else:
            console.print(
                f"\nRestored: {report.restored}  Backed up: {report.backed_up}  "
                f"Failed: {len(report.failed)}\n"
            )
        if report.failed:
            raise SystemExit(1)

    @profile.command("list")
    @home_option
    def profile_list(home: str):
        """List saved profiles."""
        with handle_errors(), open_workspace(home) as ws:
            manager = ProfileManager(ws.home, ws.index, ws.writer, ws.allowed_roots)
            summaries = manager.list()

        if not summaries:
            console.print("\n[dim]No profiles saved.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Name", style="cyan")
        table.add_column("Tools", justify="right")
        table.add_column("Files", justify="right")
        table.add_column("Created", style="dim")
        for s in summaries:
            table.add_row(s.name, str(s.tool_count), str(s.file_count), s.created_at.astimezone().strftime("%Y-%m-%d %H:%M"))

        console.print(f"\n[bold]{len(summaries)}[/] profile(s):\n")
        console.print(table)
        console.print()

    @profile.command("delete")
    @click.argument("name")
    @click.confirmation_option(prompt="Delete this profile?")
    @home_option
    def profile_delete(name: str, home: str):
        """Delete profile NAME. Stored file contents stay in the store."""
        with handle_errors(), open_workspace(home) as ws:
            manager = ProfileManager(ws.home, ws.index, ws.writer, ws.allowed_roots)
            manager.delete(name)
        console.print(f"[green]Deleted profile[/] [bold]{name}[/]")

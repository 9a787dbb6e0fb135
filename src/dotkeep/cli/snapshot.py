"""History commands: snapshot, history, diff, diff-ids, rollback."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from ..diff import DiffStatus
from ..manifest import load_manifest, save_manifest
from ..models import utcnow
from ..rollback import RollbackEngine
from ..snapshots import SnapshotStatus, summarize
from ._common import action_label, console, handle_errors, home_option, open_workspace, print_diff

_STATUS_STYLE = {
    SnapshotStatus.SNAPSHOTTED: "[green]snapshotted[/]",
    SnapshotStatus.UNCHANGED: "[dim]unchanged[/]",
    SnapshotStatus.MISSING: "[yellow]missing[/]",
    SnapshotStatus.FAILED: "[red]failed[/]",
}


def register_snapshot_commands(main: click.Group) -> None:
    """Register snapshot, history, diff, diff-ids and rollback."""

    @main.command()
    @click.argument("tool", required=False)
    @click.option("--message", "-m", default=None, help="Note stored with the snapshot.")
    @home_option
    def snapshot(tool: Optional[str], message: Optional[str], home: str):
        """Record the current content of tracked files.

        Unchanged files are not recorded again.

        Examples:

            dotkeep snapshot

            dotkeep snapshot tmux -m "before plugin update"
        """
        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            results = ws.index.snapshot_manifest(manifest, message, [tool] if tool else None)

            changed = False
            for name, outcomes in results.items():
                if any(o.status is SnapshotStatus.SNAPSHOTTED for o in outcomes):
                    manifest.tools[name].last_snapshot = utcnow()
                    changed = True
            if changed:
                save_manifest(ws.home, manifest)

        if not results:
            console.print("\n[dim]No tools tracked.[/]\n")
            return

        failed = 0
        for name, outcomes in results.items():
            console.print(f"\n[bold cyan]{name}[/]")
            for o in outcomes:
                suffix = f" #{o.snapshot_id}" if o.snapshot_id else ""
                if o.error:
                    suffix = f" ({escape(o.error)})"
                console.print(f"  {_STATUS_STYLE[o.status]}  {escape(o.file_path)}{suffix}")
            failed += summarize(outcomes)[SnapshotStatus.FAILED.value]
        console.print()
        if failed:
            console.print(f"[red]{failed} file(s) failed[/]")
            raise SystemExit(1)

    @main.command()
    @click.argument("tool")
    @click.option(
        "--limit", "-n", default=None, type=click.IntRange(min=1), help="Maximum entries to show."
    )
    @home_option
    def history(tool: str, limit: Optional[int], home: str):
        """Show a tool's snapshots, newest first."""
        with handle_errors(), open_workspace(home) as ws:
            entries = ws.index.history(tool, limit or ws.config.history_limit)

        if not entries:
            console.print(f"\n[dim]No snapshots for {tool}.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("ID", justify="right", style="cyan")
        table.add_column("Created", style="dim")
        table.add_column("Hash")
        table.add_column("File")
        table.add_column("Message")
        for e in entries:
            table.add_row(
                str(e.id),
                e.created_at.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
                e.short_hash,
                escape(e.file_path),
                escape(e.message or ""),
            )
        console.print(f"\n[bold]{len(entries)}[/] snapshot(s) of [bold]{tool}[/]:\n")
        console.print(table)
        console.print()

    @main.command()
    @click.argument("tool", required=False)
    @home_option
    def diff(tool: Optional[str], home: str):
        """Compare tracked files against their latest snapshot."""
        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            diffs = []
            for name, entry in manifest.select([tool] if tool else None).items():
                diffs.extend(ws.index.diff_current(name, entry.config_paths))

        changed = [d for d in diffs if d.status is not DiffStatus.UNCHANGED]
        if not changed:
            console.print("\n[green]No changes since the last snapshot.[/]\n")
            return
        for d in changed:
            console.print()
            print_diff(d)
        console.print()
        unreadable = sum(1 for d in changed if d.status is DiffStatus.ERROR)
        if unreadable:
            console.print(f"[red]{unreadable} file(s) could not be read[/]")
            raise SystemExit(1)

    @main.command("diff-ids")
    @click.argument("id_a", type=int)
    @click.argument("id_b", type=int)
    @home_option
    def diff_ids(id_a: int, id_b: int, home: str):
        """Compare two snapshots by id."""
        with handle_errors(), open_workspace(home) as ws:
            result = ws.index.diff_between(id_a, id_b)

        console.print()
        print_diff(result)
        console.print()

    @main.command()
    @click.argument("snapshot_id", type=int)
    @click.option("--dry-run", is_flag=True, help="Show what would happen, change nothing.")
    @home_option
    def rollback(snapshot_id: int, dry_run: bool, home: str):
        """Restore a file to the content of a snapshot.

        The current content is snapshotted and backed up first.

        Examples:

            dotkeep rollback 12 --dry-run

            dotkeep rollback 12
        """
        with handle_errors(), open_workspace(home) as ws:
            engine = RollbackEngine(ws.index, ws.writer, ws.allowed_roots)
            plan = engine.rollback(snapshot_id, dry_run=dry_run)

        console.print(
            f"\n{action_label(plan.action)}  {escape(str(plan.target))}"
            f"  [dim]({plan.old_hash[:8] if plan.old_hash else 'absent'} -> {plan.new_hash[:8]})[/]"
        )
        if plan.is_noop:
            console.print("[dim]Already at that content, nothing to do.[/]\n")
        elif dry_run:
            console.print("[yellow]Dry run, nothing changed.[/]\n")
        else:
            console.print(f"[green]Rolled back[/] to snapshot #{plan.snapshot_id}")
            if plan.backup_path:
                console.print(f"  Backup: [cyan]{escape(str(plan.backup_path))}[/]")
            console.print()

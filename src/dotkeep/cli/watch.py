"""Watch command: auto-snapshot tracked files as they change."""

from __future__ import annotations

import threading
from typing import Optional

import click
from rich.markup import escape

from ..manifest import load_manifest, save_manifest
from ..models import utcnow
from ..watch import WatchEvent, Watcher
from ._common import console, handle_errors, home_option, open_workspace


def register_watch_commands(main: click.Group) -> None:
    """Register the watch command."""

    @main.command()
    @click.argument("tool", required=False)
    @click.option("--interval", default=None, type=float, help="Seconds between polls.")
    @home_option
    def watch(tool: Optional[str], interval: Optional[float], home: str):
        """Snapshot tracked files whenever their content changes.

        Runs until interrupted with Ctrl-C.

        Examples:

            dotkeep watch

            dotkeep watch nvim --interval 5
        """
        cancel = threading.Event()

        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            watcher = Watcher(ws.index, manifest, [tool] if tool else None)
            if not watcher.files:
                console.print("\n[dim]Nothing to watch.[/]\n")
                return

            def on_event(event: WatchEvent) -> None:
                stamp = event.at.astimezone().strftime("%H:%M:%S")
                if event.error:
                    console.print(f"[dim]{stamp}[/] [red]failed[/] {escape(event.file_path)}: {escape(event.error)}")
                    return
                if event.snapshot_id is None:
                    console.print(f"[dim]{stamp}[/] [dim]seen before[/] {escape(event.file_path)}")
                    return
                console.print(f"[dim]{stamp}[/] [green]#{event.snapshot_id}[/] {escape(event.file_path)}")
                manifest.tools[event.tool].last_snapshot = utcnow()
                save_manifest(ws.home, manifest)

            console.print(
                f"[cyan]Watching[/] {len(watcher.files)} file(s) across "
                f"{watcher.tool_count} tool(s). Ctrl-C to stop."
            )
            try:
                watcher.run(cancel, interval or ws.config.watch_interval, on_event)
            except KeyboardInterrupt:
                cancel.set()
        console.print("\n[dim]Stopped.[/]")

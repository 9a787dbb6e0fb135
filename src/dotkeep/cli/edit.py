"""Edit command: open a tracked file in $EDITOR with snapshots around it."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.markup import escape

from ..errors import ConfigFileNotFound, IoFailure
from ..manifest import load_manifest, save_manifest
from ..models import utcnow
from ..paths import contract_tilde, expand_config_paths, expand_tilde
from ..snapshots import SnapshotStatus
from ..store import sha256_hex
from ._common import console, handle_errors, home_option, open_workspace

PRE_EDIT_MESSAGE = "pre-edit snapshot"
POST_EDIT_MESSAGE = "post-edit snapshot"


def pick_file(tool: str, config_paths: list[str], wanted: Optional[str] = None) -> tuple[str, Path]:
    """Choose the file to edit: ``wanted`` if tracked, else the first existing one.

    Raises:
        ConfigFileNotFound: If no tracked file matches.
    """
    files = [(portable, local) for portable, local in expand_config_paths(config_paths) if local]
    if wanted is None:
        if not files:
            raise ConfigFileNotFound(tool)
        return files[0]
    target = contract_tilde(expand_tilde(wanted).absolute())
    for portable, local in files:
        if portable == target:
            return portable, local
    raise ConfigFileNotFound(tool, wanted)


def _digest(path: Path) -> str:
    try:
        return sha256_hex(path.read_bytes())
    except OSError as exc:
        raise IoFailure(str(path), exc.strerror or str(exc)) from exc


def register_edit_commands(main: click.Group) -> None:
    """Register the edit command."""

    @main.command()
    @click.argument("tool")
    @click.option("--file", "-f", "file_path", default=None,
                  help="Tracked file to open (default: the tool's first file).")
    @click.option("--editor", default=None, help="Editor to run instead of $VISUAL / $EDITOR.")
    @home_option
    def edit(tool: str, file_path: Optional[str], editor: Optional[str], home: str):
        """Edit a tracked config file.

        The tool is snapshotted before the editor opens, and the file
        again afterwards if its content changed.

        Examples:

            dotkeep edit tmux

            dotkeep edit nvim -f ~/.config/nvim/init.lua
        """
        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            entry = manifest.get_tool(tool)
            portable, local = pick_file(tool, entry.config_paths, file_path)

            outcomes = ws.index.snapshot_all(tool, entry.config_paths, PRE_EDIT_MESSAGE)
            snapshotted = any(o.status is SnapshotStatus.SNAPSHOTTED for o in outcomes)
            if snapshotted:
                console.print(f"[dim]Snapshotted {tool} before editing[/]")

            baseline = ws.index.latest(tool, portable)
            before = _digest(local)
            click.edit(filename=str(local), editor=editor)
            after = _digest(local)

            post_id = None
            if after != before:
                post_id = ws.index.snapshot_file(tool, local, POST_EDIT_MESSAGE)
                snapshotted = snapshotted or post_id is not None
            if snapshotted:
                manifest.tools[tool].last_snapshot = utcnow()
                save_manifest(ws.home, manifest)

        if after == before:
            console.print("[dim]No changes detected.[/]")
        elif post_id is None:
            console.print(
                f"[bold]{escape(portable)}[/] modified, content matches an earlier snapshot"
            )
        else:
            console.print(
                f"[bold]{escape(portable)}[/] modified, [green]snapshot #{post_id}[/]"
            )
            if baseline is not None:
                console.print(f"Review with: [cyan]dotkeep diff-ids {baseline.id} {post_id}[/]")

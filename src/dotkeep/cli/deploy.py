"""Deploy commands: deploy, deploy-tool, deploy-remote."""

from __future__ import annotations

from typing import Optional

import click
from rich.markup import escape
from rich.panel import Panel

from ..config import configs_dir
from ..deploy import DeployEngine, DeployReport
from ..manifest import load_manifest
from ..paths import expand_tilde
from ..remote import RemoteDeployEngine, RemoteStatus, SshTransport
from ._common import action_label, console, handle_errors, home_option, open_workspace


def _print_report(report: DeployReport) -> None:
    for o in report.outcomes:
        line = f"  {action_label(o.action)}  {escape(str(o.target))}"
        if o.source is not None:
            line += f" [dim]-> {escape(str(o.source))}[/]"
        if o.backup_path is not None:
            line += f"\n      [dim]backup: {escape(str(o.backup_path))}[/]"
        if o.error:
            line += f"\n      [red]{escape(o.error)}[/]"
        console.print(line)

    counts = ", ".join(f"{k}={v}" for k, v in report.counts().items() if v)
    console.print(f"\n[bold]Summary:[/] {counts or 'nothing to do'}")
    if report.dry_run:
        console.print("[yellow]Dry run, nothing changed.[/]")
    console.print()


def register_deploy_commands(main: click.Group) -> None:
    """Register deploy, deploy-tool and deploy-remote."""

    @main.command()
    @click.argument("source", type=click.Path())
    @click.argument("target", type=click.Path())
    @click.option("--dry-run", is_flag=True, help="Show what would happen, change nothing.")
    @home_option
    def deploy(source: str, target: str, dry_run: bool, home: str):
        """Symlink TARGET to SOURCE, backing up whatever is at TARGET.

        Examples:

            dotkeep deploy ~/dotfiles/zshrc ~/.zshrc --dry-run
        """
        with handle_errors(), open_workspace(home) as ws:
            engine = DeployEngine(ws.writer, allowed_roots=ws.allowed_roots)
            outcome = engine.deploy_pair(
                expand_tilde(source).absolute(), expand_tilde(target), dry_run=dry_run
            )

        report = DeployReport(tool=None, outcomes=[outcome], dry_run=dry_run)
        console.print()
        _print_report(report)

    @main.command("deploy-tool")
    @click.argument("tool")
    @click.option("--dry-run", is_flag=True, help="Show what would happen, change nothing.")
    @home_option
    def deploy_tool(tool: str, dry_run: bool, home: str):
        """Symlink every tracked path of TOOL to its file in the configs tree.

        Sources come from ``<configs_dir>/<tool>/``; live files that get
        replaced are snapshotted and backed up first.
        """
        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            entry = manifest.get_tool(tool)
            engine = DeployEngine(ws.writer, index=ws.index, allowed_roots=ws.allowed_roots)
            report = engine.deploy_tool(tool, entry, configs_dir(ws.config), dry_run=dry_run)

        console.print(f"\n[bold cyan]{tool}[/]")
        _print_report(report)
        if report.failed:
            raise SystemExit(1)

    @main.command("deploy-remote")
    @click.argument("host")
    @click.option("--user", "-u", default=None, help="Remote user (default: from ssh config).")
    @click.option("--tool", "-t", "tools", multiple=True, help="Only deploy these tools.")
    @click.option("--dry-run", is_flag=True, help="Only ask the host what would change.")
    @home_option
    def deploy_remote(host: str, user: Optional[str], tools: tuple[str, ...], dry_run: bool, home: str):
        """Copy tracked config files to HOST over SSH.

        Existing remote files are copied aside first. Connection
        settings come from your ~/.ssh/config.

        Examples:

            dotkeep deploy-remote devbox --dry-run

            dotkeep deploy-remote devbox -u me -t tmux -t zsh
        """
        with handle_errors(), open_workspace(home) as ws:
            manifest = load_manifest(ws.home)
            transport = SshTransport(connect_timeout=ws.config.remote.connect_timeout)
            engine = RemoteDeployEngine(transport, backup_suffix=ws.config.remote.backup_suffix)
            report = engine.deploy(manifest, host, user, list(tools) or None, dry_run=dry_run)

        console.print()
        for action in report.actions:
            tag = "[yellow]overwrite[/]" if action.status is RemoteStatus.OVERWRITE else "[green]new[/]"
            console.print(f"  {tag}  {escape(action.remote_path)}  [dim]({action.tool})[/]")

        if dry_run:
            console.print(
                f"\n[bold]Plan for {report.dest}:[/] "
                f"{report.count(RemoteStatus.NEW)} new, "
                f"{report.count(RemoteStatus.OVERWRITE)} overwrite"
            )
            console.print("[yellow]Dry run, nothing changed.[/]\n")
            return

        for r in report.failed:
            console.print(f"  [red]failed[/] {escape(r.action.remote_path)}: {escape(r.error or '')}")
        style = "green" if not (report.failed or report.unreachable) else "yellow"
        console.print(Panel(
            f"Copied: {report.copied}\n"
            f"Remote backups: {report.backed_up}\n"
            f"Failed: {len(report.failed)}\n"
            f"Aborted: {len(report.aborted)}",
            title=f"Deploy to {report.dest}",
            border_style=style,
        ))
        if report.unreachable:
            console.print(f"[red]{escape(report.unreachable)}[/]")
        if report.failed or report.unreachable:
            raise SystemExit(1)

"""
Remote deploy: push tracked config files to another host over SSH.

Same protocol as a local deploy, across the network:

    1. ask the host whether each file already exists (``test -e``)
    2. classify it as ``new`` or ``overwrite``
    3. stop here on a dry run
    4. ``mkdir -p`` the parent, ``cp -a`` an existing file to
       ``<path>.<suffix>.<timestamp>``, then ``scp`` the local file over

Host, user, jump hosts and agent forwarding are whatever the user's
``~/.ssh/config`` says. Every call runs with ``BatchMode=yes`` so an
unattended run fails fast instead of waiting on a password prompt.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import RemoteCommandFailed, RemoteUnreachable
from .models import Manifest
from .paths import expand_tilde

logger = logging.getLogger("dotkeep.remote")

SSH_CONNECTION_ERROR = 255
DEFAULT_COMMAND_TIMEOUT = 120


def ssh_dest(host: str, user: Optional[str] = None) -> str:
    """``user@host`` when a user is given, otherwise just ``host``."""
    return f"{user}@{host}" if user else host


def remote_shell_path(path: str) -> str:
    """Quote a path for the remote shell, leaving ``~`` to ``$HOME``."""
    if path == "~":
        return '"$HOME"'
    if path.startswith("~/"):
        return '"$HOME"/' + shlex.quote(path[2:])
    return shlex.quote(path)


def scp_path(path: str) -> str:
    """scp resolves relative paths against the remote home."""
    if path == "~":
        return "."
    if path.startswith("~/"):
        return path[2:]
    return path


class SshTransport:
    """Runs commands on and copies files to a host with ssh / scp.

    Args:
        connect_timeout: Seconds ssh waits for the connection.
        command_timeout: Seconds before a whole call is abandoned.
    """

    def __init__(
        self,
        connect_timeout: int = 5,
        command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    def _options(self) -> list[str]:
        return [
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.connect_timeout}",
        ]

    def _call(self, host: str, args: list[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except FileNotFoundError as exc:
            raise RemoteUnreachable(host, f"{args[0]} is not installed") from exc
        except subprocess.TimeoutExpired as exc:
            raise RemoteUnreachable(host, f"timed out after {self.command_timeout}s") from exc

    def run(self, host: str, user: Optional[str], command: str) -> tuple[int, str]:
        """Run ``command`` on the host.

        Returns:
            (exit_code, stdout) of the remote command.

        Raises:
            RemoteUnreachable: Connection or authentication failed.
        """
        proc = self._call(host, ["ssh", *self._options(), ssh_dest(host, user), command])
        if proc.returncode == SSH_CONNECTION_ERROR:
            raise RemoteUnreachable(host, proc.stderr.strip() or "ssh connection failed")
        return proc.returncode, proc.stdout

    def copy(self, local_path: Path, host: str, user: Optional[str], remote_path: str) -> None:
        """Copy a local file to ``remote_path`` on the host.

        Raises:
            RemoteUnreachable: Connection or authentication failed.
            RemoteCommandFailed: Connected, but the copy failed.
        """
        dest = f"{ssh_dest(host, user)}:{scp_path(remote_path)}"
        proc = self._call(host, ["scp", "-q", *self._options(), str(local_path), dest])
        if proc.returncode == SSH_CONNECTION_ERROR:
            raise RemoteUnreachable(host, proc.stderr.strip() or "scp connection failed")
        if proc.returncode != 0:
            raise RemoteCommandFailed(host, f"copy of {local_path}", proc.stderr.strip())


class RemoteStatus(str, Enum):
    NEW = "new"
    OVERWRITE = "overwrite"


@dataclass
class RemoteAction:
    """One file in a remote deploy plan."""

    tool: str
    local_path: Path
    remote_path: str
    exists_remotely: bool

    @property
    def status(self) -> RemoteStatus:
        return RemoteStatus.OVERWRITE if self.exists_remotely else RemoteStatus.NEW


@dataclass
class RemoteFileResult:
    action: RemoteAction
    copied: bool = False
    backup_path: Optional[str] = None
    error: Optional[str] = None
    aborted: bool = False


@dataclass
class RemoteDeployReport:
    """Plan and per-file results of one ``deploy-remote`` run."""

    host: str
    dest: str
    actions: list[RemoteAction] = field(default_factory=list)
    results: list[RemoteFileResult] = field(default_factory=list)
    dry_run: bool = False
    unreachable: Optional[str] = None

    @property
    def copied(self) -> int:
        return sum(1 for r in self.results if r.copied)

    @property
    def backed_up(self) -> int:
        return sum(1 for r in self.results if r.backup_path)

    @property
    def failed(self) -> list[RemoteFileResult]:
        return [r for r in self.results if r.error and not r.aborted]

    @property
    def aborted(self) -> list[RemoteFileResult]:
        return [r for r in self.results if r.aborted]

    def count(self, status: RemoteStatus) -> int:
        return sum(1 for a in self.actions if a.status is status)


class RemoteDeployEngine:
    """Plans and executes remote deploys over a transport.

    Args:
        transport: Anything with ``run`` and ``copy`` like ``SshTransport``.
        backup_suffix: Marker placed in remote backup file names.
    """

    def __init__(self, transport: SshTransport, backup_suffix: str = "dotkeep-bak") -> None:
        self.transport = transport
        self.backup_suffix = backup_suffix

    def collect(
        self,
        manifest: Manifest,
        tools: Optional[list[str]] = None,
    ) -> list[tuple[str, Path, str]]:
        """Local files to send, as (tool, local_path, remote_path).

        Directories contribute their immediate files; tracked paths
        missing locally are skipped.
        """
        files: list[tuple[str, Path, str]] = []
        for tool, entry in manifest.select(tools).items():
            for config_path in entry.config_paths:
                local = expand_tilde(config_path)
                if local.is_file():
                    files.append((tool, local, config_path))
                elif local.is_dir():
                    for child in sorted(local.iterdir()):
                        if child.is_file():
                            files.append((tool, child, posixpath.join(config_path, child.name)))
                else:
                    logger.debug("Skipping %s: not found locally", config_path)
        return files

    def remote_exists(self, host: str, user: Optional[str], remote_path: str) -> bool:
        code, _ = self.transport.run(host, user, f"test -e {remote_shell_path(remote_path)}")
        return code == 0

    def plan(
        self,
        manifest: Manifest,
        host: str,
        user: Optional[str] = None,
        tools: Optional[list[str]] = None,
    ) -> list[RemoteAction]:
        """Classify every file as new or overwrite on the host.

        Raises:
            RemoteUnreachable: The host cannot be reached.
        """
        actions = []
        for tool, local, remote_path in self.collect(manifest, tools):
            exists = self.remote_exists(host, user, remote_path)
            actions.append(RemoteAction(tool, local, remote_path, exists))
        return actions

    def execute(
        self,
        actions: list[RemoteAction],
        host: str,
        user: Optional[str] = None,
    ) -> RemoteDeployReport:
        """Apply a plan.

        A failed step fails its own file. Losing the connection aborts
        the rest of the plan; aborted files are reported as such.
        """
        report = RemoteDeployReport(host=host, dest=ssh_dest(host, user), actions=actions)
        for position, action in enumerate(actions):
            try:
                report.results.append(self._apply(action, host, user))
            except RemoteUnreachable as exc:
                logger.warning("Lost %s, aborting remaining plan: %s", host, exc)
                report.unreachable = str(exc)
                report.results.append(RemoteFileResult(action, error=str(exc)))
                for rest in actions[position + 1:]:
                    report.results.append(RemoteFileResult(rest, error="aborted", aborted=True))
                break
            except RemoteCommandFailed as exc:
                logger.warning("Remote deploy of %s failed: %s", action.remote_path, exc)
                report.results.append(RemoteFileResult(action, error=str(exc)))
        return report

    def deploy(
        self,
        manifest: Manifest,
        host: str,
        user: Optional[str] = None,
        tools: Optional[list[str]] = None,
        dry_run: bool = False,
    ) -> RemoteDeployReport:
        """Plan, then execute unless ``dry_run``.

        Raises:
            RemoteUnreachable: The host cannot be reached while planning.
        """
        actions = self.plan(manifest, host, user, tools)
        if dry_run:
            return RemoteDeployReport(
                host=host, dest=ssh_dest(host, user), actions=actions, dry_run=True
            )
        return self.execute(actions, host, user)

    def _apply(self, action: RemoteAction, host: str, user: Optional[str]) -> RemoteFileResult:
        result = RemoteFileResult(action)

        parent = posixpath.dirname(action.remote_path)
        if parent and parent not in ("~", "/"):
            self._run_checked(host, user, f"mkdir -p {remote_shell_path(parent)}", "mkdir")

        if action.exists_remotely:
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup = f"{action.remote_path}.{self.backup_suffix}.{stamp}"
            self._run_checked(
                host,
                user,
                f"cp -a {remote_shell_path(action.remote_path)} {remote_shell_path(backup)}",
                "backup",
            )
            result.backup_path = backup

        self.transport.copy(action.local_path, host, user, action.remote_path)
        result.copied = True
        logger.info("Copied %s to %s:%s", action.local_path, host, action.remote_path)
        return result

    def _run_checked(self, host: str, user: Optional[str], command: str, step: str) -> None:
        code, _ = self.transport.run(host, user, command)
        if code != 0:
            raise RemoteCommandFailed(host, step, f"exit status {code}")

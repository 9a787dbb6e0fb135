"""
Local deploy: build a symlink farm from a source tree to live paths.

Each (source, target) pair goes through the backup-guarded writer in
link mode. A tool deploy pairs every tracked path with the file of
the same name under ``<configs_dir>/<tool>/`` and reports one outcome
per pair; a failing pair never stops the rest.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .errors import IoFailure, PathUnsafe
from .models import ToolEntry
from .paths import check_path_safety, expand_tilde
from .snapshots import SnapshotIndex
from .writer import ACTIONS, BackupGuardedWriter, TargetState, WriteAction, WriteOutcome

logger = logging.getLogger("dotkeep.deploy")

PRE_DEPLOY_MESSAGE = "pre-deploy snapshot"


@dataclass
class DeployReport:
    """Per-pair outcomes of a deploy, plus roll-up counts."""

    tool: Optional[str]
    outcomes: list[WriteOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failed(self) -> list[WriteOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def backups(self) -> list[Path]:
        return [o.backup_path for o in self.outcomes if o.backup_path is not None]

    def counts(self) -> dict[str, int]:
        """Counts keyed by action value, plus ``failed``."""
        tally = Counter(o.action.value for o in self.outcomes if o.ok)
        counts = {action.value: tally.get(action.value, 0) for action in WriteAction}
        counts["failed"] = len(self.failed)
        return counts


class DeployEngine:
    """Places symlinks through the backup-guarded writer.

    Args:
        writer: Writer that owns classification and backups.
        index: Optional snapshot index; when given, a tool's live files
            are snapshotted before they are replaced.
        allowed_roots: Extra roots (besides ``$HOME``) paths may live in.
    """

    def __init__(
        self,
        writer: BackupGuardedWriter,
        index: Optional[SnapshotIndex] = None,
        allowed_roots: Iterable[Path] = (),
    ) -> None:
        self.writer = writer
        self.index = index
        self.allowed_roots = list(allowed_roots)

    def deploy_pair(self, source: Path, target: Path, dry_run: bool = False) -> WriteOutcome:
        """Link ``target`` to ``source``.

        Raises:
            PathUnsafe: Either path resolves outside the allowed roots.
            IoFailure: The backup or the link placement failed.
        """
        check_path_safety(source, self.allowed_roots)
        check_path_safety(target, self.allowed_roots)
        return self.writer.link(source.absolute(), target, dry_run=dry_run)

    def plan_tool(self, tool: str, entry: ToolEntry, configs_dir: Path) -> list[tuple[Path, Path]]:
        """Pair each tracked path with its source under ``configs_dir``."""
        source_root = configs_dir / tool
        pairs = []
        for raw in entry.config_paths:
            target = expand_tilde(raw)
            pairs.append((source_root / target.name, target))
        return pairs

    def deploy_tool(
        self,
        tool: str,
        entry: ToolEntry,
        configs_dir: Path,
        dry_run: bool = False,
    ) -> DeployReport:
        """Deploy every tracked path of a tool as a symlink.

        Returns:
            DeployReport: One outcome per tracked path.
        """
        report = DeployReport(tool=tool, dry_run=dry_run)
        pairs = self.plan_tool(tool, entry, configs_dir)

        if not dry_run and self.index is not None:
            self._snapshot_live(tool, pairs)

        for source, target in pairs:
            try:
                outcome = self.deploy_pair(source, target, dry_run=dry_run)
            except (IoFailure, PathUnsafe) as exc:
                logger.warning("Deploy failed for %s: %s", target, exc)
                try:
                    state = self.writer.classify_link(source, target)
                except OSError:
                    state = TargetState.OCCUPIED
                outcome = WriteOutcome(
                    target=target,
                    source=source,
                    state=state,
                    action=ACTIONS[state],
                    dry_run=dry_run,
                    error=str(exc),
                )
            report.outcomes.append(outcome)
        return report

    def _snapshot_live(self, tool: str, pairs: list[tuple[Path, Path]]) -> None:
        for source, target in pairs:
            if target.is_symlink() or not target.is_file():
                continue
            if self.writer.classify_link(source, target) is not TargetState.OCCUPIED:
                continue
            try:
                self.index.snapshot_file(tool, target, PRE_DEPLOY_MESSAGE)
            except IoFailure as exc:
                logger.warning("Pre-deploy snapshot failed for %s: %s", target, exc)

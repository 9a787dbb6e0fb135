"""
Rollback: put a file back to the content of an earlier snapshot.

The write goes through the backup-guarded writer, so whatever is at
the path right now ends up in the backup area first. The current
content is also snapshotted, which makes a rollback itself undoable
from ``history``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .errors import IoFailure
from .paths import check_path_safety, expand_tilde
from .snapshots import SnapshotIndex
from .store import sha256_hex
from .writer import ACTIONS, BackupGuardedWriter, WriteAction

logger = logging.getLogger("dotkeep.rollback")

PRE_ROLLBACK_MESSAGE = "pre-rollback snapshot"


@dataclass
class RollbackPlan:
    """What a rollback does (or did).

    Attributes:
        snapshot_id: Snapshot being restored.
        tool: Tool the snapshot belongs to.
        file_path: Portable path recorded in the snapshot.
        target: Local file that receives the content.
        old_hash: Digest of the live content (None if the file is absent).
        new_hash: Digest of the snapshot content.
        action: Writer action for the target.
        backup_path: Backup of the previous content, once applied.
        pre_snapshot_id: Snapshot taken of the live content, if new.
        applied: False for dry runs and no-op rollbacks.
    """

    snapshot_id: int
    tool: str
    file_path: str
    target: Path
    old_hash: Optional[str]
    new_hash: str
    action: WriteAction
    backup_path: Optional[Path] = None
    pre_snapshot_id: Optional[int] = None
    applied: bool = False

    @property
    def is_noop(self) -> bool:
        return self.action is WriteAction.ALREADY_CORRECT


class RollbackEngine:
    """Restores snapshot content to its original path.

    Args:
        index: Snapshot index to read snapshots from.
        writer: Backup-guarded writer used for the restore.
        allowed_roots: Extra roots (besides ``$HOME``) a path may live in.
    """

    def __init__(
        self,
        index: SnapshotIndex,
        writer: BackupGuardedWriter,
        allowed_roots: Iterable[Path] = (),
    ) -> None:
        self.index = index
        self.writer = writer
        self.allowed_roots = list(allowed_roots)

    def _resolve_target(self, file_path: str) -> Path:
        target = expand_tilde(file_path)
        check_path_safety(target, self.allowed_roots)
        # Deployed configs are symlinks; restore into the file they point at.
        if target.is_symlink():
            target = check_path_safety(target.resolve(), self.allowed_roots)
        return target

    def rollback(self, snapshot_id: int, dry_run: bool = False) -> RollbackPlan:
        """Restore snapshot ``snapshot_id`` to its path.

        Raises:
            SnapshotNotFound: Unknown snapshot id.
            PathUnsafe: The path resolves outside the allowed roots.
            IoFailure: Reading the live file or writing failed.
        """
        entry = self.index.get(snapshot_id)
        content = self.index.content(entry)
        target = self._resolve_target(entry.file_path)

        current: Optional[bytes] = None
        if target.is_file():
            try:
                current = target.read_bytes()
            except OSError as exc:
                if not dry_run:
                    raise IoFailure(str(target), exc.strerror or str(exc)) from exc
                logger.debug("Cannot read %s for the plan: %s", target, exc)

        state = self.writer.classify_content(target, content)
        plan = RollbackPlan(
            snapshot_id=entry.id,
            tool=entry.tool,
            file_path=entry.file_path,
            target=target,
            old_hash=sha256_hex(current) if current is not None else None,
            new_hash=entry.content_hash,
            action=ACTIONS[state],
        )
        if dry_run or plan.is_noop:
            return plan

        if current is not None:
            plan.pre_snapshot_id = self.index.snapshot(
                entry.tool, entry.file_path, current, PRE_ROLLBACK_MESSAGE
            )

        outcome = self.writer.write(target, content)
        plan.backup_path = outcome.backup_path
        plan.applied = True
        logger.info("Rolled back %s to snapshot #%d", entry.file_path, entry.id)
        return plan

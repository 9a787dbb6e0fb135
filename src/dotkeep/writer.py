"""
Backup-guarded writer: the one primitive every write path goes through.

Rollback, local deploy and profile load all end up here. Before any
existing file, directory or link is replaced, its current state is
preserved in the backup area as ``<name>.<timestamp>.bak``. The new
state is staged under a hidden temporary name next to the target and
moved into place with a single ``os.replace``, so a crash never leaves
a half-written file at the live path.

Target classification (closed set):

    ABSENT          nothing there              -> create
    MATCHES         already the intended state -> no-op
    STALE_LINK      symlink to somewhere else  -> relink (no backup)
    OCCUPIED        file / dir / foreign link  -> backup, then replace
    SOURCE_MISSING  link source does not exist -> skip with a warning
"""

from __future__ import annotations

import logging
import os
import secrets
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import IoFailure
from .paths import PRIVATE_FILE_MODE, ensure_private_dir

logger = logging.getLogger("dotkeep.writer")


class TargetState(str, Enum):
    """What currently sits at a target path."""

    ABSENT = "absent"
    MATCHES = "matches"
    STALE_LINK = "stale-link"
    OCCUPIED = "occupied"
    SOURCE_MISSING = "source-missing"


class WriteAction(str, Enum):
    """What the writer does about it."""

    CREATE = "create"
    ALREADY_CORRECT = "ok"
    RELINK = "relink"
    BACKUP_AND_REPLACE = "backup+replace"
    SKIP = "skip"


ACTIONS: dict[TargetState, WriteAction] = {
    TargetState.ABSENT: WriteAction.CREATE,
    TargetState.MATCHES: WriteAction.ALREADY_CORRECT,
    TargetState.STALE_LINK: WriteAction.RELINK,
    TargetState.OCCUPIED: WriteAction.BACKUP_AND_REPLACE,
    TargetState.SOURCE_MISSING: WriteAction.SKIP,
}


@dataclass
class WriteOutcome:
    """Result of one guarded write (or its dry-run plan).

    Attributes:
        target: Path that was (or would be) written.
        state: Classification of the target before the write.
        action: Action taken or planned for that state.
        source: Link source for symlink writes.
        backup_path: Where the previous state was preserved, if anywhere.
        dry_run: True when nothing was touched.
        error: Failure message when the step failed inside a batch.
    """

    target: Path
    state: TargetState
    action: WriteAction
    source: Optional[Path] = None
    backup_path: Optional[Path] = None
    dry_run: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def mutates(self) -> bool:
        """Whether the action changes the filesystem when applied."""
        return self.action in (
            WriteAction.CREATE,
            WriteAction.RELINK,
            WriteAction.BACKUP_AND_REPLACE,
        )


def atomic_write(path: Path, data: bytes, mode: int = PRIVATE_FILE_MODE) -> None:
    """Write ``data`` to ``path`` via a temp file and a rename.

    The temp file lives in the same directory so the rename is atomic.
    It is removed if any step fails. The parent directory is created
    owner-only when missing.

    Raises:
        OSError: On any filesystem failure.
    """
    ensure_private_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _link_points_to(link: Path, source: Path) -> bool:
    current = os.readlink(link)
    if not os.path.isabs(current):
        current = os.path.join(link.parent, current)
    return os.path.normpath(current) == os.path.normpath(os.path.abspath(source))


class BackupGuardedWriter:
    """Classify a target, back up what is there, then write atomically.

    Args:
        backup_dir: Directory that receives ``.bak`` copies.
    """

    def __init__(self, backup_dir: Path) -> None:
        self.backup_dir = backup_dir

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify_link(self, source: Path, target: Path) -> TargetState:
        if not source.exists():
            return TargetState.SOURCE_MISSING
        if target.is_symlink():
            if _link_points_to(target, source):
                return TargetState.MATCHES
            return TargetState.STALE_LINK
        if os.path.lexists(target):
            return TargetState.OCCUPIED
        return TargetState.ABSENT

    def classify_content(self, target: Path, content: bytes) -> TargetState:
        # A link is replaced by a regular file, so its state is backed up.
        if target.is_symlink():
            return TargetState.OCCUPIED
        if target.is_file():
            try:
                if target.read_bytes() == content:
                    return TargetState.MATCHES
            except OSError as exc:
                logger.debug("Cannot compare %s: %s", target, exc)
            return TargetState.OCCUPIED
        if os.path.lexists(target):
            return TargetState.OCCUPIED
        return TargetState.ABSENT

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def link(self, source: Path, target: Path, dry_run: bool = False) -> WriteOutcome:
        """Make ``target`` a symlink to ``source``.

        Raises:
            IoFailure: If a backup or the link placement fails.
        """
        state = self.classify_link(source, target)
        outcome = WriteOutcome(
            target=target,
            source=source,
            state=state,
            action=ACTIONS[state],
            dry_run=dry_run,
        )
        if outcome.action is WriteAction.SKIP:
            logger.warning("Source %s does not exist, skipping %s", source, target)
            return outcome
        if dry_run or not outcome.mutates:
            logger.debug("%s %s -> %s (%s)", outcome.action.value, target, source, state.value)
            return outcome

        try:
            ensure_private_dir(target.parent)
            if state is TargetState.OCCUPIED:
                outcome.backup_path = self.backup(target)
            self._place_link(source, target)
        except OSError as exc:
            raise IoFailure(str(target), exc.strerror or str(exc)) from exc

        logger.info("%s %s -> %s", outcome.action.value, target, source)
        return outcome

    def write(self, target: Path, content: bytes, dry_run: bool = False) -> WriteOutcome:
        """Replace the content at ``target`` with ``content``.

        Raises:
            IoFailure: If the backup or the staged write fails.
        """
        state = self.classify_content(target, content)
        outcome = WriteOutcome(
            target=target,
            state=state,
            action=ACTIONS[state],
            dry_run=dry_run,
        )
        if dry_run or not outcome.mutates:
            logger.debug("%s %s (%s)", outcome.action.value, target, state.value)
            return outcome

        try:
            ensure_private_dir(target.parent)
            if state is TargetState.OCCUPIED:
                outcome.backup_path = self.backup(target)
            atomic_write(target, content)
        except OSError as exc:
            raise IoFailure(str(target), exc.strerror or str(exc)) from exc

        logger.info("%s %s (%d bytes)", outcome.action.value, target, len(content))
        return outcome

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def backup(self, target: Path) -> Path:
        """Preserve whatever is at ``target`` in the backup area.

        Files are copied, links are copied as links, directories are
        moved (the caller replaces them right after).

        Returns:
            Path: The backup location.
        """
        ensure_private_dir(self.backup_dir)
        dest = self._backup_name(target.name)
        if target.is_symlink():
            shutil.copy2(target, dest, follow_symlinks=False)
        elif target.is_dir():
            shutil.move(str(target), str(dest))
        else:
            shutil.copy2(target, dest)
            os.chmod(dest, PRIVATE_FILE_MODE)
        logger.info("Backed up %s to %s", target, dest)
        return dest

    def _backup_name(self, name: str) -> Path:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        candidate = self.backup_dir / f"{name}.{stamp}.bak"
        counter = 1
        while os.path.lexists(candidate):
            candidate = self.backup_dir / f"{name}.{stamp}.{counter}.bak"
            counter += 1
        return candidate

    @staticmethod
    def _place_link(source: Path, target: Path) -> None:
        staged = target.parent / f".{target.name}.{secrets.token_hex(4)}.tmp"
        os.symlink(source, staged)
        try:
            os.replace(staged, target)
        except BaseException:
            try:
                os.unlink(staged)
            except FileNotFoundError:
                pass
            raise

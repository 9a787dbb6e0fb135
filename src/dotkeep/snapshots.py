"""
Snapshot index: per-tool, per-file history of content hashes.

Every row points at a blob in the content store. The triple
(tool, file_path, content_hash) is unique, so snapshotting unchanged
content is a no-op that reports "unchanged" instead of piling up
duplicate history.

Storage: ``snapshots`` table in ``<home>/snapshots.db``.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from .diff import DiffStatus, FileDiff, compute_diff
from .errors import IoFailure, SnapshotNotFound
from .models import Manifest, SnapshotEntry
from .paths import contract_tilde, expand_config_paths
from .store import ContentStore, Store, now_iso

logger = logging.getLogger("dotkeep.snapshots")

DEFAULT_HISTORY_LIMIT = 20


class SnapshotStatus(str, Enum):
    SNAPSHOTTED = "snapshotted"
    UNCHANGED = "unchanged"
    MISSING = "missing"
    FAILED = "failed"


@dataclass
class SnapshotOutcome:
    """Per-file result of a batch snapshot."""

    tool: str
    file_path: str
    status: SnapshotStatus
    snapshot_id: Optional[int] = None
    error: Optional[str] = None


def summarize(outcomes: Iterable[SnapshotOutcome]) -> dict[str, int]:
    """Count outcomes by status, e.g. ``{"snapshotted": 3, "unchanged": 2}``."""
    counts = {status.value: 0 for status in SnapshotStatus}
    for outcome in outcomes:
        counts[outcome.status.value] += 1
    return counts


def _row_to_entry(row: sqlite3.Row) -> SnapshotEntry:
    return SnapshotEntry(
        id=row["id"],
        tool=row["tool"],
        file_path=row["file_path"],
        content_hash=row["content_hash"],
        message=row["message"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SnapshotIndex:
    """Records and queries snapshot history.

    Args:
        store: Open store handle.
        content: Content store to use (defaults to one over ``store``).
    """

    def __init__(self, store: Store, content: Optional[ContentStore] = None) -> None:
        self.store = store
        self.content_store = content or ContentStore(store)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def snapshot(
        self,
        tool: str,
        file_path: str,
        content: bytes,
        message: Optional[str] = None,
    ) -> Optional[int]:
        """Record ``content`` for (tool, file_path).

        Returns:
            The new snapshot id, or None when this exact content was
            already recorded for the file (unchanged, not an error).
        """
        conn = self.store.conn
        try:
            digest = self.content_store.put(content, commit=False)
            cur = conn.execute(
                "INSERT OR IGNORE INTO snapshots (tool, file_path, content_hash, message, created_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (tool, file_path, digest, message, now_iso()),
            )
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise

        if not cur.rowcount:
            logger.debug("Unchanged: %s %s (%s)", tool, file_path, digest[:8])
            return None
        logger.info("Snapshot #%d: %s %s (%s)", cur.lastrowid, tool, file_path, digest[:8])
        return cur.lastrowid

    def snapshot_file(self, tool: str, path: Path, message: Optional[str] = None) -> Optional[int]:
        """Read a live file and snapshot it under its portable path.

        Raises:
            IoFailure: If the file cannot be read.
        """
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise IoFailure(str(path), exc.strerror or str(exc)) from exc
        return self.snapshot(tool, contract_tilde(path), content, message)

    def snapshot_all(
        self,
        tool: str,
        config_paths: list[str],
        message: Optional[str] = None,
    ) -> list[SnapshotOutcome]:
        """Snapshot every file a tool tracks.

        Directories contribute their immediate files. A missing path or
        an unreadable file is reported in its outcome and the batch
        carries on.
        """
        outcomes: list[SnapshotOutcome] = []
        for portable, local in expand_config_paths(config_paths):
            if local is None:
                outcomes.append(SnapshotOutcome(tool, portable, SnapshotStatus.MISSING))
                continue
            try:
                snap_id = self.snapshot_file(tool, local, message)
            except (IoFailure, sqlite3.Error) as exc:
                logger.warning("Snapshot failed for %s: %s", portable, exc)
                outcomes.append(
                    SnapshotOutcome(tool, portable, SnapshotStatus.FAILED, error=str(exc))
                )
                continue
            status = SnapshotStatus.UNCHANGED if snap_id is None else SnapshotStatus.SNAPSHOTTED
            outcomes.append(SnapshotOutcome(tool, portable, status, snapshot_id=snap_id))
        return outcomes

    def snapshot_manifest(
        self,
        manifest: Manifest,
        message: Optional[str] = None,
        tools: Optional[list[str]] = None,
    ) -> dict[str, list[SnapshotOutcome]]:
        """``snapshot_all`` for every selected tool in the manifest."""
        return {
            name: self.snapshot_all(name, entry.config_paths, message)
            for name, entry in manifest.select(tools).items()
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, snapshot_id: int) -> SnapshotEntry:
        """Look up one snapshot.

        Raises:
            SnapshotNotFound: If the id does not exist.
        """
        row = self.store.conn.execute(
            "SELECT * FROM snapshots WHERE id = ?", (snapshot_id,)
        ).fetchone()
        if row is None:
            raise SnapshotNotFound(snapshot_id)
        return _row_to_entry(row)

    def content(self, entry: SnapshotEntry) -> bytes:
        return self.content_store.get(entry.content_hash)

    def latest(self, tool: str, file_path: str) -> Optional[SnapshotEntry]:
        row = self.store.conn.execute(
            "SELECT * FROM snapshots WHERE tool = ? AND file_path = ? ORDER BY id DESC LIMIT 1",
            (tool, file_path),
        ).fetchone()
        return _row_to_entry(row) if row else None

    def history(
        self,
        tool: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        file_path: Optional[str] = None,
    ) -> list[SnapshotEntry]:
        """Snapshots for a tool, newest first, at most ``limit`` rows.

        Raises:
            ValueError: If ``limit`` is less than 1.
        """
        if limit < 1:
            raise ValueError(f"history limit must be at least 1, got {limit}")
        if file_path is None:
            rows = self.store.conn.execute(
                "SELECT * FROM snapshots WHERE tool = ? ORDER BY id DESC LIMIT ?",
                (tool, limit),
            ).fetchall()
        else:
            rows = self.store.conn.execute(
                "SELECT * FROM snapshots WHERE tool = ? AND file_path = ? ORDER BY id DESC LIMIT ?",
                (tool, file_path, limit),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self, tool: Optional[str] = None) -> int:
        if tool is None:
            return self.store.conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
        return self.store.conn.execute(
            "SELECT COUNT(*) FROM snapshots WHERE tool = ?", (tool,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Diffs
    # ------------------------------------------------------------------

    def diff_current(self, tool: str, config_paths: list[str]) -> list[FileDiff]:
        """Compare each tracked file with its most recent snapshot.

        A file with no snapshot yet comes back as ``no-baseline``; a
        snapshotted file that no longer exists comes back as ``missing``.
        A file that exists but cannot be read comes back as ``error``
        without stopping the others. Tracked paths that neither exist
        nor have history are omitted.
        """
        diffs: list[FileDiff] = []
        for portable, local in expand_config_paths(config_paths):
            baseline = self.latest(tool, portable)
            old = self.content(baseline) if baseline else None
            new: Optional[bytes] = None
            if local is not None:
                try:
                    new = local.read_bytes()
                except OSError as exc:
                    reason = exc.strerror or str(exc)
                    logger.warning("Cannot read %s for diff: %s", local, reason)
                    diffs.append(
                        FileDiff(
                            file_path=portable,
                            status=DiffStatus.ERROR,
                            old_hash=baseline.content_hash if baseline else None,
                            old_label=f"snapshot #{baseline.id}" if baseline else "no baseline",
                            new_label="working copy",
                            error=reason,
                        )
                    )
                    continue
            if old is None and new is None:
                continue
            diffs.append(
                compute_diff(
                    old,
                    new,
                    portable,
                    old_label=f"snapshot #{baseline.id}" if baseline else "no baseline",
                    new_label="working copy",
                )
            )
        return diffs

    def diff_between(self, id_a: int, id_b: int) -> FileDiff:
        """Diff two snapshots, whatever tool or path they belong to."""
        entry_a = self.get(id_a)
        entry_b = self.get(id_b)
        label = entry_b.file_path if entry_a.file_path == entry_b.file_path else (
            f"{entry_a.file_path} -> {entry_b.file_path}"
        )
        return compute_diff(
            self.content(entry_a),
            self.content(entry_b),
            label,
            old_label=f"snapshot #{entry_a.id}",
            new_label=f"snapshot #{entry_b.id}",
        )

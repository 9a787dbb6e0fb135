"""
Watch tracked config files and snapshot them when they change.

A single-threaded polling loop. Each tick stats every watched file;
only a changed mtime triggers a re-hash, and a changed mtime with an
identical hash is ignored (editors that save without changes, touch).
The loop stops when its cancellation token is set.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .models import Manifest
from .paths import expand_config_paths
from .snapshots import SnapshotIndex
from .store import sha256_hex

logger = logging.getLogger("dotkeep.watch")

AUTO_SNAPSHOT_MESSAGE = "auto-snapshot (watch)"
DEFAULT_INTERVAL = 2.0


@dataclass
class FileState:
    tool: str
    file_path: str
    mtime_ns: int
    digest: str


@dataclass
class WatchEvent:
    """A watched file whose content really changed.

    ``snapshot_id`` is None when the new content was already in the
    file's history (e.g. an edit was undone).
    """

    tool: str
    file_path: str
    snapshot_id: Optional[int] = None
    error: Optional[str] = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Watcher:
    """Polls the tracked files of a manifest.

    Args:
        index: Snapshot index that receives auto-snapshots.
        manifest: Tool catalog.
        tools: Only watch these tools (all when empty).
    """

    def __init__(
        self,
        index: SnapshotIndex,
        manifest: Manifest,
        tools: Optional[list[str]] = None,
    ) -> None:
        self.index = index
        self.files: dict[Path, FileState] = {}
        for tool, entry in manifest.select(tools).items():
            for portable, local in expand_config_paths(entry.config_paths):
                if local is None:
                    continue
                try:
                    mtime_ns = local.stat().st_mtime_ns
                    digest = sha256_hex(local.read_bytes())
                except OSError as exc:
                    logger.warning("Not watching %s: %s", portable, exc)
                    continue
                self.files[local] = FileState(tool, portable, mtime_ns, digest)

    @property
    def tool_count(self) -> int:
        return len({state.tool for state in self.files.values()})

    def poll_once(self) -> list[WatchEvent]:
        """Check every file once and snapshot the ones that changed."""
        events: list[WatchEvent] = []
        for path, state in self.files.items():
            try:
                mtime_ns = path.stat().st_mtime_ns
            except OSError:
                continue
            if mtime_ns == state.mtime_ns:
                continue
            state.mtime_ns = mtime_ns

            try:
                data = path.read_bytes()
            except OSError as exc:
                logger.debug("Cannot read %s: %s", path, exc)
                continue
            digest = sha256_hex(data)
            if digest == state.digest:
                logger.debug("mtime changed but content identical: %s", state.file_path)
                continue
            state.digest = digest

            event = WatchEvent(state.tool, state.file_path)
            try:
                event.snapshot_id = self.index.snapshot(
                    state.tool, state.file_path, data, AUTO_SNAPSHOT_MESSAGE
                )
            except sqlite3.Error as exc:
                logger.warning("Auto-snapshot failed for %s: %s", state.file_path, exc)
                event.error = str(exc)
            events.append(event)
        return events

    def run(
        self,
        cancel: threading.Event,
        interval: float = DEFAULT_INTERVAL,
        on_event: Optional[Callable[[WatchEvent], None]] = None,
    ) -> int:
        """Poll until ``cancel`` is set.

        Returns:
            int: Number of change events seen.
        """
        seen = 0
        while not cancel.is_set():
            if cancel.wait(interval):
                break
            for event in self.poll_once():
                seen += 1
                if on_event is not None:
                    on_event(event)
        logger.info("Watch stopped after %d change(s)", seen)
        return seen

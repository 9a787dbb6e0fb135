"""Tests for dotkeep.watch: polling and auto-snapshots."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from dotkeep.models import Manifest, ToolEntry
from dotkeep.watch import AUTO_SNAPSHOT_MESSAGE, Watcher


def _bump_mtime(path: Path) -> None:
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))


@pytest.fixture
def manifest(fake_home: Path, make_file) -> Manifest:
    make_file(fake_home / ".zshrc", "one\n")
    m = Manifest()
    m.add_tool("zsh", ToolEntry(config_paths=["~/.zshrc", "~/.zsh_missing"]))
    return m


class TestPollOnce:
    def test_nothing_changed(self, index, manifest):
        watcher = Watcher(index, manifest)
        assert len(watcher.files) == 1
        assert watcher.poll_once() == []

    def test_touch_without_change_is_ignored(self, index, manifest, fake_home):
        watcher = Watcher(index, manifest)
        _bump_mtime(fake_home / ".zshrc")
        assert watcher.poll_once() == []
        assert index.count() == 0

    def test_real_change_is_snapshotted(self, index, manifest, fake_home):
        watcher = Watcher(index, manifest)
        path = fake_home / ".zshrc"
        path.write_text("two\n")
        _bump_mtime(path)

        (event,) = watcher.poll_once()
        assert event.tool == "zsh"
        assert event.file_path == "~/.zshrc"
        entry = index.get(event.snapshot_id)
        assert entry.message == AUTO_SNAPSHOT_MESSAGE
        assert index.content(entry) == b"two\n"
        assert watcher.poll_once() == []


class TestRun:
    def test_cancelled_token_stops_immediately(self, index, manifest):
        cancel = threading.Event()
        cancel.set()
        assert Watcher(index, manifest).run(cancel, interval=0.01) == 0

    def test_events_delivered_until_cancelled(self, index, manifest, fake_home):
        watcher = Watcher(index, manifest)
        cancel = threading.Event()
        seen = []
        path = fake_home / ".zshrc"
        path.write_text("changed\n")
        _bump_mtime(path)

        def on_event(event):
            seen.append(event)
            cancel.set()

        assert watcher.run(cancel, interval=0.01, on_event=on_event) == 1
        assert seen[0].file_path == "~/.zshrc"

"""
Tests for dotkeep.snapshots: recording, dedup, history and diffs.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from dotkeep.diff import DiffStatus
from dotkeep.errors import SnapshotNotFound
from dotkeep.models import Manifest, ToolEntry
from dotkeep.snapshots import SnapshotIndex, SnapshotStatus, summarize


class TestSnapshot:
    """Recording content and deduplicating it."""

    def test_same_content_twice_keeps_one_entry(self, index: SnapshotIndex):
        first = index.snapshot("zsh", "~/.zshrc", b"x")
        second = index.snapshot("zsh", "~/.zshrc", b"x")
        assert first is not None
        assert second is None
        assert len(index.history("zsh")) == 1

    def test_new_content_is_newest_first(self, index: SnapshotIndex):
        index.snapshot("zsh", "~/.zshrc", b"x")
        index.snapshot("zsh", "~/.zshrc", b"y")
        entries = index.history("zsh")
        assert len(entries) == 2
        assert index.content(entries[0]) == b"y"
        assert index.content(entries[1]) == b"x"
        assert entries[0].id > entries[1].id

    def test_blob_shared_across_pairs(self, index: SnapshotIndex):
        a = index.snapshot("zsh", "~/.zshrc", b"shared")
        b = index.snapshot("bash", "~/.bashrc", b"shared")
        assert a is not None and b is not None
        assert index.get(a).content_hash == index.get(b).content_hash
        assert index.content_store.count() == 1

    def test_message_is_stored(self, index: SnapshotIndex):
        snap_id = index.snapshot("git", "~/.gitconfig", b"[user]", "before rebase")
        assert index.get(snap_id).message == "before rebase"

    def test_get_unknown_raises(self, index: SnapshotIndex):
        with pytest.raises(SnapshotNotFound):
            index.get(999)

    def test_history_limit(self, index: SnapshotIndex):
        for n in range(5):
            index.snapshot("tmux", "~/.tmux.conf", f"v{n}".encode())
        entries = index.history("tmux", limit=3)
        assert [index.content(e) for e in entries] == [b"v4", b"v3", b"v2"]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_history_limit_below_one_is_rejected(self, index: SnapshotIndex, limit: int):
        for n in range(30):
            index.snapshot("t", "~/.t", f"v{n}".encode())
        with pytest.raises(ValueError):
            index.history("t", limit=limit)

    def test_history_default_limit_caps_rows(self, index: SnapshotIndex):
        for n in range(30):
            index.snapshot("t", "~/.t", f"v{n}".encode())
        assert len(index.history("t")) == 20

    def test_snapshot_file_uses_portable_path(self, index: SnapshotIndex, fake_home: Path, make_file):
        path = make_file(fake_home / ".vimrc", "set nu\n")
        snap_id = index.snapshot_file("vim", path)
        assert index.get(snap_id).file_path == "~/.vimrc"


class TestSnapshotAll:
    """Batch snapshots over a tool's tracked paths."""

    def test_reports_per_file(self, index: SnapshotIndex, fake_home: Path, make_file):
        make_file(fake_home / ".config" / "nvim" / "init.lua", "-- init")
        make_file(fake_home / ".config" / "nvim" / "keys.lua", "-- keys")
        paths = ["~/.config/nvim", "~/.config/nvim-gone.lua"]

        outcomes = index.snapshot_all("nvim", paths)
        counts = summarize(outcomes)
        assert counts["snapshotted"] == 2
        assert counts["missing"] == 1

        again = summarize(index.snapshot_all("nvim", paths))
        assert again["unchanged"] == 2
        assert again["snapshotted"] == 0

    def test_unreadable_file_does_not_stop_batch(self, index: SnapshotIndex, fake_home: Path, make_file, monkeypatch):
        good = make_file(fake_home / ".a", "a")
        bad = make_file(fake_home / ".b", "b")
        real_read = Path.read_bytes

        def fake_read(self):
            if self == bad:
                raise PermissionError(13, "Permission denied")
            return real_read(self)

        monkeypatch.setattr(Path, "read_bytes", fake_read)
        outcomes = index.snapshot_all("dots", [str(good), str(bad)])
        statuses = {o.file_path: o.status for o in outcomes}
        assert statuses["~/.a"] is SnapshotStatus.SNAPSHOTTED
        assert statuses["~/.b"] is SnapshotStatus.FAILED
        assert "Permission denied" in next(o.error for o in outcomes if o.file_path == "~/.b")

    def test_snapshot_manifest_selects_tools(self, index: SnapshotIndex, fake_home: Path, make_file):
        make_file(fake_home / ".zshrc", "z")
        make_file(fake_home / ".tmux.conf", "t")
        manifest = Manifest()
        manifest.add_tool("zsh", ToolEntry(config_paths=["~/.zshrc"]))
        manifest.add_tool("tmux", ToolEntry(config_paths=["~/.tmux.conf"]))

        results = index.snapshot_manifest(manifest, tools=["tmux"])
        assert list(results) == ["tmux"]
        assert index.count("zsh") == 0
        assert index.count("tmux") == 1


class TestDiffs:
    """Working copy and snapshot-to-snapshot diffs."""

    def test_no_baseline_is_not_an_error(self, index: SnapshotIndex, fake_home: Path, make_file):
        make_file(fake_home / ".zshrc", "export A=1\n")
        diffs = index.diff_current("zsh", ["~/.zshrc"])
        assert len(diffs) == 1
        assert diffs[0].status is DiffStatus.NO_BASELINE
        assert diffs[0].additions == 1

    def test_unchanged_after_snapshot(self, index: SnapshotIndex, fake_home: Path, make_file):
        path = make_file(fake_home / ".zshrc", "export A=1\n")
        index.snapshot_file("zsh", path)
        diffs = index.diff_current("zsh", ["~/.zshrc"])
        assert diffs[0].status is DiffStatus.UNCHANGED
        assert diffs[0].lines == []

    def test_modified_working_copy(self, index: SnapshotIndex, fake_home: Path, make_file):
        path = make_file(fake_home / ".zshrc", "export A=1\n")
        index.snapshot_file("zsh", path)
        path.write_text("export A=2\n")
        (d,) = index.diff_current("zsh", ["~/.zshrc"])
        assert d.status is DiffStatus.MODIFIED
        assert d.additions == 1 and d.deletions == 1
        assert "+export A=2" in d.as_text()

    def test_deleted_file_is_missing(self, index: SnapshotIndex, fake_home: Path, make_file):
        path = make_file(fake_home / ".zshrc", "x\n")
        index.snapshot_file("zsh", path)
        path.unlink()
        (d,) = index.diff_current("zsh", ["~/.zshrc"])
        assert d.status is DiffStatus.MISSING

    def test_untracked_and_absent_is_omitted(self, index: SnapshotIndex):
        assert index.diff_current("zsh", ["~/.nothing-here"]) == []

    def test_diff_between_snapshots(self, index: SnapshotIndex):
        a = index.snapshot("git", "~/.gitconfig", b"name = a\n")
        b = index.snapshot("git", "~/.gitconfig", b"name = b\n")
        d = index.diff_between(a, b)
        assert d.status is DiffStatus.MODIFIED
        assert d.old_label == f"snapshot #{a}"
        assert d.new_label == f"snapshot #{b}"

    def test_diff_between_unknown_id(self, index: SnapshotIndex):
        a = index.snapshot("git", "~/.gitconfig", b"x")
        with pytest.raises(SnapshotNotFound):
            index.diff_between(a, a + 100)

    def test_unreadable_file_is_reported_not_raised(
        self, index: SnapshotIndex, fake_home: Path, make_file, monkeypatch
    ):
        zshrc = make_file(fake_home / ".zshrc", "export A=1\n")
        tmux = make_file(fake_home / ".tmux.conf", "set -g mouse on\n")
        index.snapshot_file("mixed", zshrc)
        index.snapshot_file("mixed", tmux)
        tmux.write_text("set -g mouse off\n")

        real_read_bytes = Path.read_bytes

        def read_bytes(self):
            if self.name == ".zshrc":
                raise PermissionError(13, "Permission denied")
            return real_read_bytes(self)

        monkeypatch.setattr(Path, "read_bytes", read_bytes)
        diffs = {d.file_path: d for d in index.diff_current("mixed", ["~/.zshrc", "~/.tmux.conf"])}

        assert diffs["~/.zshrc"].status is DiffStatus.ERROR
        assert diffs["~/.zshrc"].error == "Permission denied"
        assert diffs["~/.zshrc"].old_hash is not None
        assert diffs["~/.tmux.conf"].status is DiffStatus.MODIFIED

"""
Tests for dotkeep.writer: classification, backups and atomic writes.

Every target state must map to exactly one action, a dry run must not
touch the filesystem, and nothing is replaced without a backup.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from dotkeep.errors import IoFailure
from dotkeep.writer import (
    ACTIONS,
    BackupGuardedWriter,
    TargetState,
    WriteAction,
    atomic_write,
)


def _snapshot_tree(root: Path) -> dict[str, tuple]:
    """Paths under ``root`` with what they are and what they hold."""
    tree = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            p = Path(dirpath) / name
            if p.is_symlink():
                tree[str(p)] = ("link", os.readlink(p))
            elif p.is_file():
                tree[str(p)] = ("file", p.read_bytes())
            else:
                tree[str(p)] = ("dir",)
    return tree


@pytest.fixture
def source(fake_home: Path, make_file) -> Path:
    return make_file(fake_home / "dotfiles" / "zshrc", "export EDITOR=vim\n")


class TestActionTable:
    def test_every_state_has_one_action(self):
        assert set(ACTIONS) == set(TargetState)
        assert ACTIONS[TargetState.ABSENT] is WriteAction.CREATE
        assert ACTIONS[TargetState.MATCHES] is WriteAction.ALREADY_CORRECT
        assert ACTIONS[TargetState.STALE_LINK] is WriteAction.RELINK
        assert ACTIONS[TargetState.OCCUPIED] is WriteAction.BACKUP_AND_REPLACE
        assert ACTIONS[TargetState.SOURCE_MISSING] is WriteAction.SKIP


class TestLinkMode:
    """Symlink placement for each of the five target states."""

    def test_absent_creates_link(self, writer: BackupGuardedWriter, source: Path, fake_home: Path):
        target = fake_home / ".zshrc"
        outcome = writer.link(source, target)
        assert outcome.state is TargetState.ABSENT
        assert outcome.action is WriteAction.CREATE
        assert target.is_symlink()
        assert target.resolve() == source.resolve()
        assert outcome.backup_path is None

    def test_matching_link_is_left_alone(self, writer, source, fake_home, monkeypatch):
        target = fake_home / ".zshrc"
        target.symlink_to(source)

        def boom(*args, **kwargs):
            raise AssertionError("no write expected")

        monkeypatch.setattr(os, "replace", boom)
        monkeypatch.setattr(os, "symlink", boom)
        outcome = writer.link(source, target)
        assert outcome.state is TargetState.MATCHES
        assert outcome.action is WriteAction.ALREADY_CORRECT
        assert not outcome.mutates

    def test_stale_link_is_relinked_without_backup(self, writer, source, fake_home, make_file, backup_dir):
        other = make_file(fake_home / "old" / "zshrc", "old\n")
        target = fake_home / ".zshrc"
        target.symlink_to(other)

        outcome = writer.link(source, target)
        assert outcome.state is TargetState.STALE_LINK
        assert outcome.action is WriteAction.RELINK
        assert os.readlink(target) == str(source)
        assert outcome.backup_path is None
        assert list(backup_dir.iterdir()) == []

    def test_occupied_file_is_backed_up(self, writer, source, fake_home, make_file, backup_dir):
        target = make_file(fake_home / ".zshrc", "original\n")

        outcome = writer.link(source, target)
        assert outcome.state is TargetState.OCCUPIED
        assert outcome.action is WriteAction.BACKUP_AND_REPLACE
        assert target.is_symlink()
        assert outcome.backup_path.parent == backup_dir
        assert outcome.backup_path.name.startswith(".zshrc.")
        assert outcome.backup_path.name.endswith(".bak")
        assert outcome.backup_path.read_bytes() == b"original\n"

    def test_occupied_directory_is_moved_aside(self, writer, source, fake_home, make_file):
        target = fake_home / ".zshrc"
        make_file(target / "inner", "data")

        outcome = writer.link(source, target)
        assert target.is_symlink()
        assert (outcome.backup_path / "inner").read_text() == "data"

    def test_missing_source_is_skipped(self, writer, fake_home, make_file):
        target = make_file(fake_home / ".zshrc", "keep me\n")
        outcome = writer.link(fake_home / "dotfiles" / "nope", target)
        assert outcome.state is TargetState.SOURCE_MISSING
        assert outcome.action is WriteAction.SKIP
        assert outcome.ok
        assert target.read_text() == "keep me\n"

    def test_dry_run_touches_nothing(self, writer, source, fake_home, make_file, dk_home):
        target = make_file(fake_home / ".zshrc", "original\n")
        before = _snapshot_tree(fake_home)

        outcome = writer.link(source, target, dry_run=True)
        assert outcome.action is WriteAction.BACKUP_AND_REPLACE
        assert outcome.dry_run
        assert outcome.backup_path is None
        assert _snapshot_tree(fake_home) == before

    def test_dry_run_plan_matches_real_run(self, writer, source, fake_home, make_file):
        target = make_file(fake_home / ".zshrc", "original\n")
        planned = writer.link(source, target, dry_run=True)
        applied = writer.link(source, target)
        assert (planned.state, planned.action) == (applied.state, applied.action)

    def test_failed_backup_leaves_target(self, writer, source, fake_home, make_file, monkeypatch):
        target = make_file(fake_home / ".zshrc", "original\n")

        def fail(*args, **kwargs):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr("dotkeep.writer.shutil.copy2", fail)
        with pytest.raises(IoFailure, match="No space left"):
            writer.link(source, target)
        assert not target.is_symlink()
        assert target.read_text() == "original\n"


class TestContentMode:
    """Content writes used by rollback and profile load."""

    def test_absent_is_created_owner_only(self, writer, fake_home):
        target = fake_home / ".config" / "new" / "app.conf"
        outcome = writer.write(target, b"hello\n")
        assert outcome.action is WriteAction.CREATE
        assert target.read_bytes() == b"hello\n"
        assert stat.S_IMODE(target.stat().st_mode) == 0o600
        assert stat.S_IMODE(target.parent.stat().st_mode) == 0o700

    def test_same_content_is_noop(self, writer, fake_home, make_file):
        target = make_file(fake_home / ".gitconfig", "[user]\n")
        mtime = target.stat().st_mtime_ns
        outcome = writer.write(target, b"[user]\n")
        assert outcome.state is TargetState.MATCHES
        assert target.stat().st_mtime_ns == mtime

    def test_different_content_backs_up_first(self, writer, fake_home, make_file, backup_dir):
        target = make_file(fake_home / ".gitconfig", "old\n")
        outcome = writer.write(target, b"new\n")
        assert outcome.action is WriteAction.BACKUP_AND_REPLACE
        assert target.read_bytes() == b"new\n"
        assert outcome.backup_path.read_bytes() == b"old\n"
        assert stat.S_IMODE(outcome.backup_path.stat().st_mode) == 0o600
        assert stat.S_IMODE(backup_dir.stat().st_mode) == 0o700

    def test_backups_never_collide(self, writer, fake_home, make_file):
        target = make_file(fake_home / ".gitconfig", "v1\n")
        first = writer.write(target, b"v2\n").backup_path
        second = writer.write(target, b"v3\n").backup_path
        assert first != second
        assert first.read_bytes() == b"v1\n"
        assert second.read_bytes() == b"v2\n"

    def test_dry_run_writes_nothing(self, writer, fake_home, make_file, backup_dir):
        target = make_file(fake_home / ".gitconfig", "old\n")
        outcome = writer.write(target, b"new\n", dry_run=True)
        assert outcome.action is WriteAction.BACKUP_AND_REPLACE
        assert target.read_bytes() == b"old\n"
        assert list(backup_dir.iterdir()) == []


class TestAtomicWrite:
    def test_no_temp_file_left_on_failure(self, fake_home, monkeypatch):
        target = fake_home / "out.txt"

        def fail(src, dst):
            raise OSError(5, "Input/output error")

        monkeypatch.setattr("dotkeep.writer.os.replace", fail)
        with pytest.raises(OSError):
            atomic_write(target, b"data")
        assert not target.exists()
        assert [p.name for p in fake_home.iterdir() if p.name.endswith(".tmp")] == []

    def test_replaces_existing(self, fake_home, make_file):
        target = make_file(fake_home / "out.txt", "before")
        atomic_write(target, b"after")
        assert target.read_bytes() == b"after"

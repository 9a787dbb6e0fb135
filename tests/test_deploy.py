"""Tests for dotkeep.deploy: local symlink deploys."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from dotkeep.deploy import PRE_DEPLOY_MESSAGE, DeployEngine
from dotkeep.errors import PathUnsafe
from dotkeep.models import ToolEntry
from dotkeep.writer import WriteAction


@pytest.fixture
def configs(fake_home: Path) -> Path:
    return fake_home / ".config" / "dotkeep" / "configs"


class TestDeployPair:
    def test_regular_file_becomes_symlink_with_backup(self, writer, fake_home, make_file, backup_dir):
        source = make_file(fake_home / "dotfiles" / "gitconfig", "[user]\n  name = new\n")
        target = make_file(fake_home / ".gitconfig", "[user]\n  name = old\n")

        outcome = DeployEngine(writer).deploy_pair(source, target)
        assert target.is_symlink()
        assert os.readlink(target) == str(source)
        baks = [p for p in backup_dir.iterdir() if p.name.endswith(".bak")]
        assert len(baks) == 1
        assert baks[0].read_bytes() == b"[user]\n  name = old\n"
        assert outcome.backup_path == baks[0]

    def test_second_deploy_is_noop(self, writer, fake_home, make_file):
        source = make_file(fake_home / "dotfiles" / "gitconfig", "x")
        target = fake_home / ".gitconfig"
        engine = DeployEngine(writer)
        engine.deploy_pair(source, target)
        again = engine.deploy_pair(source, target)
        assert again.action is WriteAction.ALREADY_CORRECT

    def test_target_outside_home_is_refused(self, writer, fake_home, make_file, tmp_path):
        source = make_file(fake_home / "dotfiles" / "gitconfig", "x")
        with pytest.raises(PathUnsafe):
            DeployEngine(writer).deploy_pair(source, tmp_path / "etc" / "gitconfig")
        assert not (tmp_path / "etc").exists()


class TestDeployTool:
    def test_pairs_sources_by_name(self, writer, configs, fake_home):
        entry = ToolEntry(config_paths=["~/.tmux.conf", "~/.config/kitty/kitty.conf"])
        pairs = DeployEngine(writer).plan_tool("term", entry, configs)
        assert pairs == [
            (configs / "term" / ".tmux.conf", fake_home / ".tmux.conf"),
            (configs / "term" / "kitty.conf", fake_home / ".config" / "kitty" / "kitty.conf"),
        ]

    def test_reports_each_pair(self, writer, configs, fake_home, make_file):
        make_file(configs / "term" / ".tmux.conf", "set -g mouse on\n")
        make_file(fake_home / ".tmux.conf", "old tmux\n")
        entry = ToolEntry(config_paths=["~/.tmux.conf", "~/.config/kitty/kitty.conf"])

        report = DeployEngine(writer).deploy_tool("term", entry, configs)
        actions = [o.action for o in report.outcomes]
        assert actions == [WriteAction.BACKUP_AND_REPLACE, WriteAction.SKIP]
        counts = report.counts()
        assert counts["backup+replace"] == 1
        assert counts["skip"] == 1
        assert counts["failed"] == 0
        assert len(report.backups) == 1

    def test_live_files_snapshotted_before_replace(self, writer, index, configs, fake_home, make_file):
        make_file(configs / "tmux" / ".tmux.conf", "new\n")
        make_file(fake_home / ".tmux.conf", "precious\n")
        entry = ToolEntry(config_paths=["~/.tmux.conf"])

        DeployEngine(writer, index=index).deploy_tool("tmux", entry, configs)
        (snap,) = index.history("tmux")
        assert snap.message == PRE_DEPLOY_MESSAGE
        assert snap.file_path == "~/.tmux.conf"
        assert index.content(snap) == b"precious\n"

    def test_dry_run_mutates_nothing(self, writer, index, configs, fake_home, make_file, backup_dir):
        make_file(configs / "tmux" / ".tmux.conf", "new\n")
        target = make_file(fake_home / ".tmux.conf", "precious\n")
        entry = ToolEntry(config_paths=["~/.tmux.conf"])

        report = DeployEngine(writer, index=index).deploy_tool("tmux", entry, configs, dry_run=True)
        assert report.outcomes[0].action is WriteAction.BACKUP_AND_REPLACE
        assert not target.is_symlink()
        assert index.count() == 0
        assert list(backup_dir.iterdir()) == []

    def test_one_failure_does_not_stop_the_rest(self, writer, configs, fake_home, make_file, tmp_path):
        make_file(configs / "mixed" / "outside.conf", "x")
        make_file(configs / "mixed" / ".inside", "y")
        entry = ToolEntry(config_paths=[str(tmp_path / "outside.conf"), "~/.inside"])

        report = DeployEngine(writer).deploy_tool("mixed", entry, configs)
        assert len(report.failed) == 1
        assert "outside your home" in report.failed[0].error
        assert (fake_home / ".inside").is_symlink()

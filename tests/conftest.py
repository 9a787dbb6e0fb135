"""Shared test fixtures for dotkeep."""

from __future__ import annotations

from pathlib import Path

import pytest

from dotkeep.manifest import init_home
from dotkeep.snapshots import SnapshotIndex
from dotkeep.store import Store
from dotkeep.writer import BackupGuardedWriter


@pytest.fixture(autouse=True)
def fake_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``$HOME`` and ``$DOTKEEP_HOME`` into the test's tmp dir."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("DOTKEEP_HOME", str(home / ".config" / "dotkeep"))
    return home


@pytest.fixture
def dk_home(fake_home: Path) -> Path:
    """An initialized dotkeep home inside the fake ``$HOME``."""
    home = fake_home / ".config" / "dotkeep"
    init_home(home)
    return home


@pytest.fixture
def store(dk_home: Path):
    """Open store on the test dotkeep home."""
    with Store.open(dk_home) as s:
        yield s


@pytest.fixture
def index(store: Store) -> SnapshotIndex:
    return SnapshotIndex(store)


@pytest.fixture
def writer(dk_home: Path) -> BackupGuardedWriter:
    return BackupGuardedWriter(dk_home / "backups")


@pytest.fixture
def backup_dir(dk_home: Path) -> Path:
    return dk_home / "backups"


@pytest.fixture
def make_file():
    """Factory that creates a file (and its parents) with some content."""

    def _make(path: Path, content: str | bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        return path

    return _make

"""
Profiles: named sets of config file contents you can switch between.

``profile save`` stores the bytes of every tracked file in the content
store and writes ``profiles/<name>/profile.yaml`` mapping each portable
path to its digest. ``profile load`` writes them back through the
backup-guarded writer, snapshotting each live file first.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable

import yaml

from .errors import (
    BlobNotFound,
    InvalidProfileName,
    IoFailure,
    PathUnsafe,
    ProfileExists,
    ProfileNotFound,
)
from .models import Manifest, ProfileMeta
from .paths import check_path_safety, ensure_private_dir, expand_config_paths, expand_tilde
from .snapshots import SnapshotIndex
from .writer import ACTIONS, BackupGuardedWriter, TargetState, WriteOutcome, atomic_write

logger = logging.getLogger("dotkeep.profiles")

PROFILE_FILENAME = "profile.yaml"
PRE_LOAD_MESSAGE = "pre-profile-load snapshot"
_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_profile_name(name: str) -> None:
    """Reject names that could escape the profiles directory.

    Raises:
        InvalidProfileName: Empty, too long, or has other characters
            than letters, digits, ``-`` and ``_``.
    """
    if not _NAME_RE.match(name):
        raise InvalidProfileName(name)


@dataclass
class ProfileSummary:
    name: str
    created_at: datetime
    tool_count: int
    file_count: int


@dataclass
class ProfileLoadReport:
    """Outcome of ``profile load``."""

    name: str
    outcomes: list[WriteOutcome] = field(default_factory=list)
    tools_added: list[str] = field(default_factory=list)
    skipped_tools: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def restored(self) -> int:
        return sum(1 for o in self.outcomes if o.ok and o.mutates)

    @property
    def backed_up(self) -> int:
        return sum(1 for o in self.outcomes if o.backup_path is not None)

    @property
    def failed(self) -> list[WriteOutcome]:
        return [o for o in self.outcomes if not o.ok]


class ProfileManager:
    """Save, load, list and delete profiles.

    Args:
        home: dotkeep home (profiles live in ``<home>/profiles``).
        index: Snapshot index (its content store holds profile bytes).
        writer: Backup-guarded writer used when loading.
        allowed_roots: Extra roots (besides ``$HOME``) paths may live in.
    """

    def __init__(
        self,
        home: Path,
        index: SnapshotIndex,
        writer: BackupGuardedWriter,
        allowed_roots: Iterable[Path] = (),
    ) -> None:
        self.profiles_dir = home / "profiles"
        self.index = index
        self.writer = writer
        self.allowed_roots = list(allowed_roots)

    def _meta_path(self, name: str) -> Path:
        return self.profiles_dir / name / PROFILE_FILENAME

    def _read_meta(self, name: str) -> ProfileMeta:
        validate_profile_name(name)
        path = self._meta_path(name)
        if not path.exists():
            raise ProfileNotFound(name)
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return ProfileMeta.model_validate(data)

    def save(self, manifest: Manifest, name: str) -> ProfileMeta:
        """Capture every tracked file into a new profile.

        Raises:
            InvalidProfileName: Bad name.
            ProfileExists: A profile with that name exists.
            IoFailure: A tracked file could not be read.
        """
        validate_profile_name(name)
        if self._meta_path(name).exists():
            raise ProfileExists(name)

        meta = ProfileMeta(name=name, tools=dict(manifest.tools))
        for tool, entry in sorted(manifest.tools.items()):
            for portable, local in expand_config_paths(entry.config_paths):
                if local is None:
                    continue
                try:
                    data = local.read_bytes()
                except OSError as exc:
                    raise IoFailure(str(local), exc.strerror or str(exc)) from exc
                meta.files[portable] = self.index.content_store.put(data)
                meta.file_tools[portable] = tool

        ensure_private_dir(self.profiles_dir / name)
        payload = yaml.safe_dump(meta.model_dump(mode="json"), default_flow_style=False)
        atomic_write(self._meta_path(name), payload.encode("utf-8"))
        logger.info("Saved profile %s (%d tools, %d files)", name, len(meta.tools), len(meta.files))
        return meta

    def load(
        self,
        manifest: Manifest,
        name: str,
        add_untracked: bool = False,
        dry_run: bool = False,
    ) -> ProfileLoadReport:
        """Restore a profile's files.

        Tools the manifest does not track are skipped unless
        ``add_untracked``; then they are added to ``manifest`` (the
        caller saves it). Each file reports its own outcome.

        Raises:
            InvalidProfileName: Bad name.
            ProfileNotFound: No such profile.
        """
        meta = self._read_meta(name)
        report = ProfileLoadReport(name=name, dry_run=dry_run)

        for tool, entry in sorted(meta.tools.items()):
            if not manifest.has_tool(tool):
                if not add_untracked:
                    report.skipped_tools.append(tool)
                    continue
                report.tools_added.append(tool)
                if not dry_run:
                    manifest.add_tool(tool, entry.model_copy(deep=True))

            for portable, digest in sorted(meta.files.items()):
                if meta.file_tools.get(portable) != tool:
                    continue
                report.outcomes.append(self._restore_file(tool, portable, digest, dry_run))

        logger.info(
            "Loaded profile %s: %d restored, %d backed up, %d failed",
            name, report.restored, report.backed_up, len(report.failed),
        )
        return report

    def _restore_file(self, tool: str, portable: str, digest: str, dry_run: bool) -> WriteOutcome:
        target = expand_tilde(portable)
        try:
            check_path_safety(target, self.allowed_roots)
            if target.is_symlink():
                target = check_path_safety(target.resolve(), self.allowed_roots)
            content = self.index.content_store.get(digest)
            if not dry_run and target.is_file():
                try:
                    current = target.read_bytes()
                except OSError as exc:
                    raise IoFailure(str(target), exc.strerror or str(exc)) from exc
                self.index.snapshot(tool, portable, current, PRE_LOAD_MESSAGE)
            return self.writer.write(target, content, dry_run=dry_run)
        except (IoFailure, PathUnsafe, BlobNotFound) as exc:
            logger.warning("Profile restore failed for %s: %s", portable, exc)
            state = TargetState.OCCUPIED
            return WriteOutcome(
                target=target,
                state=state,
                action=ACTIONS[state],
                dry_run=dry_run,
                error=str(exc),
            )

    def list(self) -> list[ProfileSummary]:
        """Saved profiles sorted by name; unreadable ones are skipped."""
        if not self.profiles_dir.exists():
            return []
        summaries = []
        for child in sorted(self.profiles_dir.iterdir()):
            if not (child / PROFILE_FILENAME).exists():
                continue
            try:
                meta = self._read_meta(child.name)
            except (InvalidProfileName, yaml.YAMLError, ValueError) as exc:
                logger.warning("Skipping unreadable profile %s: %s", child.name, exc)
                continue
            summaries.append(
                ProfileSummary(
                    name=meta.name,
                    created_at=meta.created_at,
                    tool_count=len(meta.tools),
                    file_count=len(meta.files),
                )
            )
        return summaries

    def delete(self, name: str) -> None:
        """Remove a profile's metadata. Stored content stays in the store.

        Raises:
            ProfileNotFound: No such profile.
        """
        validate_profile_name(name)
        profile_dir = self.profiles_dir / name
        if not (profile_dir / PROFILE_FILENAME).exists():
            raise ProfileNotFound(name)
        shutil.rmtree(profile_dir)
        logger.info("Deleted profile %s", name)

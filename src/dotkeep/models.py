"""
Pydantic models for everything dotkeep persists.

The manifest, the config file, snapshot index rows and profile
metadata all round-trip through these.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .errors import ToolAlreadyTracked, ToolNotTracked


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolEntry(BaseModel):
    """A tracked tool and the config paths that belong to it.

    Attributes:
        tier: How much curated metadata exists for the tool
            (1 = full, 2 = auto-detected, 3 = user-enriched).
        config_paths: Tilde-contracted files or directories.
        added_at: When the tool was first tracked.
        last_snapshot: When a snapshot last recorded new content.
    """

    tier: int = 2
    config_paths: list[str] = Field(default_factory=list)
    added_at: datetime = Field(default_factory=utcnow)
    last_snapshot: Optional[datetime] = None


class Manifest(BaseModel):
    """The tool catalog: tool name -> tracked paths."""

    tools: dict[str, ToolEntry] = Field(default_factory=dict)

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    def get_tool(self, name: str) -> ToolEntry:
        """Look up a tool entry.

        Raises:
            ToolNotTracked: If the tool is not in the manifest.
        """
        try:
            return self.tools[name]
        except KeyError:
            raise ToolNotTracked(name) from None

    def add_tool(self, name: str, entry: ToolEntry) -> None:
        if name in self.tools:
            raise ToolAlreadyTracked(name)
        self.tools[name] = entry

    def remove_tool(self, name: str) -> ToolEntry:
        if name not in self.tools:
            raise ToolNotTracked(name)
        return self.tools.pop(name)

    def select(self, names: Optional[list[str]] = None) -> dict[str, ToolEntry]:
        """Return the tools named in ``names`` (all tools when empty).

        Raises:
            ToolNotTracked: If a requested tool is not tracked.
        """
        if not names:
            return dict(sorted(self.tools.items()))
        return {name: self.get_tool(name) for name in names}


class RemoteConfig(BaseModel):
    """Settings for ``deploy-remote``."""

    backup_suffix: str = "dotkeep-bak"
    connect_timeout: int = 5


class DotkeepConfig(BaseModel):
    """dotkeep's own settings, stored in ``<home>/config.yaml``."""

    configs_dir: str = "~/.config/dotkeep/configs"
    backup_dir: Optional[str] = None
    history_limit: int = Field(20, ge=1)
    watch_interval: float = 2.0
    remote: RemoteConfig = Field(default_factory=RemoteConfig)


class SnapshotEntry(BaseModel):
    """One row of the snapshot index.

    Attributes:
        id: Monotonically increasing snapshot id.
        tool: Tool the file belongs to.
        file_path: Tilde-contracted path of the file.
        content_hash: SHA-256 of the stored content.
        message: Optional annotation.
        created_at: When the snapshot was recorded (UTC).
    """

    id: int
    tool: str
    file_path: str
    content_hash: str
    message: Optional[str] = None
    created_at: datetime

    @property
    def short_hash(self) -> str:
        return self.content_hash[:8]


class ProfileMeta(BaseModel):
    """Metadata written to ``profiles/<name>/profile.yaml``.

    ``files`` maps each portable path to the digest of its content in
    the content store; ``file_tools`` records which tool owns it.
    """

    name: str
    created_at: datetime = Field(default_factory=utcnow)
    tools: dict[str, ToolEntry] = Field(default_factory=dict)
    files: dict[str, str] = Field(default_factory=dict)
    file_tools: dict[str, str] = Field(default_factory=dict)

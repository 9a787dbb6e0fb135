"""
Error taxonomy for dotkeep.

Library code raises these; the CLI turns them into a red message and
a non-zero exit. Batch operations record them per file instead.
"""

from __future__ import annotations


class DotkeepError(Exception):
    """Base class for every error dotkeep reports to the user."""


class NotFound(DotkeepError):
    """A requested snapshot or content hash does not exist."""


class SnapshotNotFound(NotFound):
    def __init__(self, snapshot_id: int):
        self.snapshot_id = snapshot_id
        super().__init__(f"snapshot #{snapshot_id} not found")


class BlobNotFound(NotFound):
    def __init__(self, digest: str):
        self.digest = digest
        super().__init__(f"content {digest[:12]} not found in store")


class PathUnsafe(DotkeepError):
    """A resolved path escapes the home / dotkeep boundary."""

    def __init__(self, path: str, resolved: str):
        self.path = path
        self.resolved = resolved
        super().__init__(
            f"path '{path}' resolves outside your home directory to '{resolved}'"
        )


class IoFailure(DotkeepError):
    """A filesystem operation failed (permissions, disk full, ...)."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class RemoteUnreachable(DotkeepError):
    """Could not connect or authenticate to a remote host."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"cannot reach {host}: {reason}")


class RemoteCommandFailed(DotkeepError):
    """Connected to the host, but the remote step itself failed."""

    def __init__(self, host: str, step: str, detail: str = ""):
        self.host = host
        self.step = step
        self.detail = detail
        msg = f"{step} failed on {host}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class NotInitialized(DotkeepError):
    def __init__(self, home: str):
        super().__init__(f"dotkeep is not initialized at {home}; run `dotkeep init` first")


class ToolNotTracked(DotkeepError):
    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"'{tool}' is not tracked by dotkeep")


class ToolAlreadyTracked(DotkeepError):
    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"'{tool}' is already tracked by dotkeep")


class ProfileNotFound(NotFound):
    def __init__(self, name: str):
        super().__init__(f"profile '{name}' not found")


class ProfileExists(DotkeepError):
    def __init__(self, name: str):
        super().__init__(f"profile '{name}' already exists; pick another name or delete it first")


class InvalidProfileName(DotkeepError):
    def __init__(self, name: str):
        super().__init__(
            f"invalid profile name '{name}': use only letters, digits, hyphens and underscores"
        )


class ManifestInvalid(DotkeepError):
    """``manifest.yaml`` is not valid YAML or not a tool catalog."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"invalid manifest {path}: {reason}")


class ConfigFileNotFound(NotFound):
    """No editable file among a tool's tracked paths."""

    def __init__(self, tool: str, file_path: str = ""):
        self.tool = tool
        self.file_path = file_path
        if file_path:
            super().__init__(f"'{file_path}' is not a tracked file of '{tool}'")
        else:
            super().__init__(f"no config file found for '{tool}'")

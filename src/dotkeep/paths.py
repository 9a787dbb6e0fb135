"""
Path helpers: portable (tilde) paths, containment checks, private dirs.

Tracked paths are stored tilde-contracted (``~/.config/tmux/tmux.conf``)
so a manifest or snapshot history stays valid on another machine.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from . import DOTKEEP_HOME
from .errors import PathUnsafe

PRIVATE_DIR_MODE = 0o700
PRIVATE_FILE_MODE = 0o600


def dotkeep_home(home: Optional[str | Path] = None) -> Path:
    """Resolve the dotkeep state directory.

    Args:
        home: Explicit override (CLI ``--home``). Falls back to
            ``$DOTKEEP_HOME`` then ``~/.config/dotkeep``.

    Returns:
        Path: Expanded, absolute state directory.
    """
    raw = home if home is not None else os.environ.get("DOTKEEP_HOME", DOTKEEP_HOME)
    return Path(raw).expanduser().absolute()


def expand_tilde(path: str | Path) -> Path:
    """Expand a leading ``~`` to the user's home directory."""
    return Path(os.path.expanduser(str(path)))


def contract_tilde(path: str | Path) -> str:
    """Turn ``/home/me/.zshrc`` into ``~/.zshrc``; other paths pass through."""
    p = Path(path)
    home = Path.home()
    try:
        rel = p.relative_to(home)
    except ValueError:
        return str(p)
    if str(rel) == ".":
        return "~"
    return f"~/{rel.as_posix()}"


def expand_config_paths(config_paths: Iterable[str]) -> list[tuple[str, Optional[Path]]]:
    """Expand tracked paths into individual files.

    Directories contribute their immediate regular files (sorted).
    A path that does not exist is returned with ``None`` so callers can
    report it as missing.

    Args:
        config_paths: Portable tracked paths from the manifest.

    Returns:
        list of (portable_path, local_path_or_None).
    """
    files: list[tuple[str, Optional[Path]]] = []
    for raw in config_paths:
        local = expand_tilde(raw)
        if local.is_dir():
            for child in sorted(local.iterdir()):
                if child.is_file():
                    files.append((contract_tilde(child), child))
        elif local.is_file():
            files.append((contract_tilde(local), local))
        else:
            files.append((raw, None))
    return files


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def check_path_safety(path: str | Path, extra_roots: Iterable[Path] = ()) -> Path:
    """Make sure a path does not escape the user's home.

    The path is resolved through any symlinks (missing trailing
    components are allowed) and must land inside ``$HOME`` or one of
    ``extra_roots``.

    Args:
        path: Path to check.
        extra_roots: Additional allowed roots (the dotkeep home).

    Returns:
        Path: The resolved path.

    Raises:
        PathUnsafe: If the resolved path is outside every allowed root.
    """
    resolved = expand_tilde(path).resolve()
    roots = [Path.home().resolve()]
    roots.extend(Path(r).expanduser().resolve() for r in extra_roots)
    if not any(_is_within(resolved, root) for root in roots):
        raise PathUnsafe(str(path), str(resolved))
    return resolved


def ensure_private_dir(path: Path) -> None:
    """Create ``path`` and any missing parents with owner-only access.

    Directories that already exist keep their permissions.
    """
    missing: list[Path] = []
    current = path
    while not current.exists():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent
    for directory in reversed(missing):
        directory.mkdir(mode=PRIVATE_DIR_MODE, exist_ok=True)
        os.chmod(directory, PRIVATE_DIR_MODE)


class PathState(str, Enum):
    """What a tracked path currently points at on disk."""

    PRESENT = "present"
    LINKED = "linked"
    BROKEN_LINK = "broken-link"
    MISSING = "missing"


def path_state(path: str | Path) -> PathState:
    """Classify a tracked path without following it past a dangling link."""
    local = expand_tilde(path)
    if local.is_symlink():
        return PathState.LINKED if local.exists() else PathState.BROKEN_LINK
    return PathState.PRESENT if local.exists() else PathState.MISSING

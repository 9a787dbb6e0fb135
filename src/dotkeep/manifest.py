"""
The tool catalog on disk: ``<home>/manifest.yaml``.

Each tracked tool lists the config files or directories dotkeep
snapshots and deploys. Writes are atomic and owner-only.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .errors import ManifestInvalid, NotInitialized
from .models import Manifest
from .paths import ensure_private_dir
from .writer import atomic_write

logger = logging.getLogger("dotkeep.manifest")

MANIFEST_FILENAME = "manifest.yaml"


def manifest_path(home: Path) -> Path:
    return home / MANIFEST_FILENAME


def is_initialized(home: Path) -> bool:
    return manifest_path(home).exists()


def load_manifest(home: Path) -> Manifest:
    """Read the manifest.

    Raises:
        NotInitialized: If ``dotkeep init`` has not been run for ``home``.
        ManifestInvalid: If the file is not YAML or not a tool catalog.
    """
    path = manifest_path(home)
    if not path.exists():
        raise NotInitialized(str(home))
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return Manifest.model_validate(data)
    except (yaml.YAMLError, UnicodeDecodeError) as exc:
        raise ManifestInvalid(str(path), f"not valid YAML ({exc.__class__.__name__})") from exc
    except ValidationError as exc:
        reason = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'tools'}: {err['msg']}"
            for err in exc.errors()[:3]
        )
        raise ManifestInvalid(str(path), reason) from exc


def save_manifest(home: Path, manifest: Manifest) -> Path:
    ensure_private_dir(home)
    path = manifest_path(home)
    data = manifest.model_dump(mode="json", exclude_none=True)
    atomic_write(path, yaml.safe_dump(data, default_flow_style=False, sort_keys=True).encode("utf-8"))
    logger.debug("Saved manifest with %d tool(s) to %s", len(manifest.tools), path)
    return path


def init_home(home: Path) -> bool:
    """Create the home layout and an empty manifest.

    Returns:
        bool: False if the home was already initialized.
    """
    if is_initialized(home):
        return False
    ensure_private_dir(home)
    ensure_private_dir(home / "backups")
    ensure_private_dir(home / "profiles")
    save_manifest(home, Manifest())
    logger.info("Initialized dotkeep home at %s", home)
    return True

"""Load and save ``config.yaml`` (dotkeep's own settings)."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from .models import DotkeepConfig
from .paths import expand_tilde
from .writer import atomic_write

logger = logging.getLogger("dotkeep.config")

CONFIG_FILENAME = "config.yaml"


def load_config(home: Path) -> DotkeepConfig:
    """Load settings, falling back to defaults on a missing or bad file.

    Args:
        home: dotkeep home directory.

    Returns:
        DotkeepConfig: Parsed or default settings.
    """
    config_file = home / CONFIG_FILENAME
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return DotkeepConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load %s, using defaults: %s", config_file, exc)
    return DotkeepConfig()


def save_config(home: Path, config: DotkeepConfig) -> Path:
    config_file = home / CONFIG_FILENAME
    data = config.model_dump(mode="json", exclude_none=True)
    atomic_write(config_file, yaml.safe_dump(data, default_flow_style=False).encode("utf-8"))
    return config_file


def backup_dir(home: Path, config: DotkeepConfig) -> Path:
    """Where backup-guarded writes put ``.bak`` files."""
    if config.backup_dir:
        return expand_tilde(config.backup_dir)
    return home / "backups"


def configs_dir(config: DotkeepConfig) -> Path:
    """Source tree that ``deploy-tool`` links from."""
    return expand_tilde(config.configs_dir)

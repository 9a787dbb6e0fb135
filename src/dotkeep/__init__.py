"""
dotkeep: config file tracking with a safety net.

Point-in-time snapshots, diffs, rollback and symlink/SSH deploys for
the dotfiles you already have. Nothing is overwritten without a backup.
"""

import os

__version__ = "0.1.0"

DOTKEEP_HOME = os.environ.get("DOTKEEP_HOME", "~/.config/dotkeep")

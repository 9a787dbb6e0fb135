"""
dotkeep CLI: config file tracking from the command line.

This package organizes the CLI into modular command groups.
The main Click group is defined here and all subcommands
are registered via register functions.

Entry point: dotkeep.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="dotkeep")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose: bool):
    """dotkeep: snapshots, diffs, rollback and deploys for your dotfiles.

    Nothing is overwritten without a backup.
    """
    logging.basicConfig(
        format="%(name)s: %(message)s",
        level=logging.DEBUG if verbose else logging.WARNING,
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .track import register_track_commands
from .snapshot import register_snapshot_commands
from .deploy import register_deploy_commands
from .profile import register_profile_commands
from .watch import register_watch_commands
from .status import register_status_commands
from .edit import register_edit_commands

register_track_commands(main)
register_snapshot_commands(main)
register_deploy_commands(main)
register_profile_commands(main)
register_watch_commands(main)
register_status_commands(main)
register_edit_commands(main)

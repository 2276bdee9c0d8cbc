"""
SkillSync CLI -- manage the skill library and its tool exports.

Each command group lives in its own module. The main Click group is
defined here and all subcommands are registered via register functions.

Entry point: skillsync.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__
from ._common import terminal_handler


@click.group()
@click.version_option(version=__version__, prog_name="skillsync")
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity to stderr.")
def main(verbose):
    """SkillSync -- one skill library, every tool.

    Export skills into native tool folders and keep every copy in step.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[terminal_handler(verbose)],
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .location_cmd import register_location_commands
from .skill_cmd import register_skill_commands
from .sync_cmd import register_sync_commands
from .scan_cmd import register_scan_commands

register_location_commands(main)
register_skill_commands(main)
register_sync_commands(main)
register_scan_commands(main)

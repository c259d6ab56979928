"""
instructsync CLI — sync copilot-instructions.md with a gist.

Commands live in their own modules and register themselves on the
main Click group.

Entry point: instructsync.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="instructsync")
def main():
    """instructsync — one instructions file, two replicas, kept in step."""


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .sync_cmd import register_sync_commands
from .config_cmd import register_config_commands
from .watch import register_watch_commands

register_sync_commands(main)
register_config_commands(main)
register_watch_commands(main)

"""Command-line interface for backupagent.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Set source folder, destination folder and access token
- upload: Upload the latest backup, resuming an interrupted upload
- status: Show configuration and the pending upload
- history: List past upload attempts
- reset-session: Discard the pending upload
"""

from __future__ import annotations

import click

from backupagent.client.cli.config import (
    get_access_token,
    get_backup_config,
    get_config_dir,
    get_config_file,
    get_drive_config,
    get_state_db_path,
    load_config,
    save_config,
)
from backupagent.client.cli.configure import configure
from backupagent.client.cli.records import history, reset_session, status
from backupagent.client.cli.upload import upload


@click.group()
@click.version_option(package_name="backupagent")
def cli() -> None:
    """backupagent - Resumable uploads of your latest backup."""


cli.add_command(configure)
cli.add_command(upload)
cli.add_command(status)
cli.add_command(history)
cli.add_command(reset_session)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_access_token",
    "get_backup_config",
    "get_config_dir",
    "get_config_file",
    "get_drive_config",
    "get_state_db_path",
    "load_config",
    "save_config",
]

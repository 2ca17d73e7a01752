"""Configure command for the backupagent CLI.

Commands:
- configure: Set source folder, file pattern, destination folder and token
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from keyring.errors import KeyringError

from backupagent.client.cli.config import (
    get_config_file,
    load_config,
    save_config,
    set_access_token,
)


@click.command()
@click.option(
    "--source-folder",
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder that receives the backup files.",
)
@click.option("--pattern", "file_pattern", help="Glob pattern backup file names match.")
@click.option("--folder-id", "destination_folder_id", help="Remote folder to upload into.")
@click.option("--token", help="OAuth2 access token (stored in the OS keyring).")
@click.option(
    "--wifi-only/--any-network",
    default=None,
    help="Network preference for scheduled uploads.",
)
@click.option("--api-url", help="Override the metadata API base URL.")
@click.option("--upload-url", help="Override the resumable upload URL.")
def configure(
    source_folder: Path | None,
    file_pattern: str | None,
    destination_folder_id: str | None,
    token: str | None,
    wifi_only: bool | None,
    api_url: str | None,
    upload_url: str | None,
) -> None:
    """Update backupagent settings.

    Only the options given are changed.
    """
    config = load_config()
    updates = {
        "source_folder": str(source_folder.expanduser().resolve()) if source_folder else None,
        "file_pattern": file_pattern,
        "destination_folder_id": destination_folder_id,
        "wifi_only": wifi_only,
        "api_url": api_url,
        "upload_url": upload_url,
    }
    changed = {key: value for key, value in updates.items() if value is not None}

    if not changed and token is None:
        click.echo("Nothing to change. See 'backupagent configure --help'.")
        return

    if changed:
        config.update(changed)
        save_config(config)
        for key, value in changed.items():
            click.echo(f"{key} = {value}")
        click.echo(f"Saved {get_config_file()}")

    if token is not None:
        try:
            set_access_token(token)
        except KeyringError as e:
            click.echo(f"Error: Could not store token in keyring: {e}", err=True)
            sys.exit(1)
        click.echo("Access token stored in keyring.")

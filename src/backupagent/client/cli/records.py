"""Inspection commands for the backupagent CLI.

Commands:
- status: Show configuration, pending session and last result
- history: List past upload attempts
- reset-session: Discard the pending upload session
"""

from __future__ import annotations

from datetime import datetime

import click

from backupagent.client.cli.config import (
    get_access_token,
    get_backup_config,
    get_state_db_path,
    load_config,
)
from backupagent.client.history import UploadHistory, UploadRecord
from backupagent.client.state import SessionStore
from backupagent.core.types import format_file_size


def format_timestamp(timestamp: float) -> str:
    """Local time as YYYY-MM-DD HH:MM."""
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def format_record(record: UploadRecord) -> str:
    """One history line."""
    when = format_timestamp(record.timestamp)
    size = format_file_size(record.file_size)
    if record.succeeded:
        return click.style("✓", fg="green") + f" {when}  {record.file_name} ({size})"
    return (
        click.style("✗", fg="red")
        + f" {when}  {record.file_name} ({size}): {record.error_message or 'failed'}"
    )


@click.command()
def status() -> None:
    """Show configuration and upload state."""
    backup_config = get_backup_config(load_config())

    click.echo(f"Source folder:      {backup_config.source_folder or '(not set)'}")
    click.echo(f"File pattern:       {backup_config.file_pattern}")
    click.echo(f"Destination folder: {backup_config.destination_folder_id or '(not set)'}")
    click.echo(f"Network:            {'Wi-Fi only' if backup_config.wifi_only else 'any'}")
    click.echo(f"Access token:       {'set' if get_access_token() else 'not set'}")

    db_path = get_state_db_path()
    sessions = SessionStore(db_path)
    history = UploadHistory(db_path)
    try:
        session = sessions.load()
        latest = history.latest()
    finally:
        sessions.close()
        history.close()

    click.echo("")
    if session is None:
        click.echo("No upload in progress.")
    else:
        percent = (
            int(session.bytes_uploaded * 100 / session.total_bytes)
            if session.total_bytes
            else 0
        )
        click.echo(f"Pending upload: {session.file_name}")
        click.echo(
            f"  {format_file_size(session.bytes_uploaded)} of "
            f"{format_file_size(session.total_bytes)} confirmed ({percent}%)"
        )
        click.echo(f"  Started {format_timestamp(session.created_at)}")
        if session.is_expired():
            click.echo("  Session expired; the next upload starts over.")

    if latest is not None:
        click.echo(f"Last attempt:   {format_record(latest)}")


@click.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, show_default=True)
def history(limit: int) -> None:
    """List recent upload attempts, newest first."""
    upload_history = UploadHistory(get_state_db_path())
    try:
        records = upload_history.list_records(limit=limit)
    finally:
        upload_history.close()

    if not records:
        click.echo("No uploads yet.")
        return
    for record in records:
        click.echo(format_record(record))


@click.command("reset-session")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def reset_session(yes: bool) -> None:
    """Discard the pending upload so the next run starts over.

    The partially uploaded data on the server is not deleted.
    """
    sessions = SessionStore(get_state_db_path())
    try:
        session = sessions.load()
        if session is None:
            click.echo("No upload in progress.")
            return
        if not yes:
            click.confirm(
                f"Discard pending upload of {session.file_name} "
                f"({format_file_size(session.bytes_uploaded)} sent)?",
                abort=True,
            )
        sessions.clear()
    finally:
        sessions.close()
    click.echo("Upload session discarded.")

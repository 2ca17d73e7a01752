"""Upload command for the backupagent CLI.

Commands:
- upload: Upload the latest backup file, resuming an interrupted upload
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Callable

import click

from backupagent.client.cli.config import (
    get_access_token,
    get_backup_config,
    get_drive_config,
    get_state_db_path,
    load_config,
)
from backupagent.client.upload.retry import DEFAULT_INITIAL_BACKOFF, DEFAULT_MAX_ATTEMPTS
from backupagent.client.upload.types import Failed, NeedsConsent, Success, UploadProgress
from backupagent.core.types import format_file_size

EXIT_FAILED = 1
EXIT_NEEDS_CONSENT = 2


class StatusLineAwareHandler(logging.Handler):
    """Logging handler that coordinates with the status line display.

    Clears the status line before printing log messages and restores it after.
    """

    def __init__(
        self,
        clear_func: Callable[[], None],
        update_func: Callable[[], None],
        lock: threading.Lock,
    ) -> None:
        super().__init__()
        self._clear_func = clear_func
        self._update_func = update_func
        self._lock = lock

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            with self._lock:
                self._clear_func()
                sys.stdout.write(msg + "\n")
                sys.stdout.flush()
                self._update_func()
        except Exception:
            self.handleError(record)


def format_progress(progress: UploadProgress) -> str:
    """One-line description of transfer progress."""
    line = (
        f"{progress.percent:3d}% "
        f"({format_file_size(progress.bytes_uploaded)} / "
        f"{format_file_size(progress.total_bytes)}"
    )
    if progress.speed_bytes_per_sec > 0:
        line += f", {format_file_size(progress.speed_bytes_per_sec)}/s"
    if progress.estimated_seconds_remaining >= 0:
        minutes, seconds = divmod(progress.estimated_seconds_remaining, 60)
        line += f", ETA {minutes}m{seconds:02d}s"
    return line + ")"


@click.command()
@click.option(
    "--attempts",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_ATTEMPTS,
    show_default=True,
    help="Total upload attempts before giving up.",
)
@click.option(
    "--backoff",
    type=click.FloatRange(min=0),
    default=DEFAULT_INITIAL_BACKOFF,
    show_default=True,
    help="Seconds to wait before the first retry (doubles each retry).",
)
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
@click.option("--verbose", "-v", is_flag=True, help="Show informational log messages.")
def upload(attempts: int, backoff: float, no_progress: bool, verbose: bool) -> None:
    """Upload the latest backup file.

    Resumes an interrupted upload where the server left off. Failed
    attempts are retried with exponential backoff.
    """
    from backupagent.client.api import DriveClient
    from backupagent.client.history import UploadHistory
    from backupagent.client.state import SessionStore
    from backupagent.client.upload import UploadOrchestrator, run_with_retry

    config = load_config()
    token = get_access_token()
    if not token:
        click.echo(
            "Error: No access token. Run 'backupagent configure --token ...' "
            "or set BACKUPAGENT_TOKEN.",
            err=True,
        )
        sys.exit(EXIT_FAILED)

    backup_config = get_backup_config(config)
    drive_config = get_drive_config(token, config)
    db_path = get_state_db_path()

    last_status_len = 0
    current_line = ""
    progress_lock = threading.Lock()

    def clear_status_line() -> None:
        """Clear the current status line."""
        nonlocal last_status_len
        if last_status_len > 0:
            sys.stdout.write("\r" + " " * last_status_len + "\r")
            sys.stdout.flush()
            last_status_len = 0

    def update_status_line() -> None:
        """Redraw the progress line."""
        nonlocal last_status_len
        if no_progress or not current_line:
            return
        clear_part = " " * max(0, last_status_len - len(current_line))
        sys.stdout.write(f"\r{current_line}{clear_part}")
        sys.stdout.flush()
        last_status_len = len(current_line)

    def on_progress(progress: UploadProgress) -> None:
        nonlocal current_line
        with progress_lock:
            current_line = f"  Uploading: {format_progress(progress)}"
            update_status_line()

    def on_retry(number: int, failure: Failed, delay: float) -> None:
        nonlocal current_line
        with progress_lock:
            clear_status_line()
            current_line = ""
        click.echo(f"Attempt {number} failed: {failure.error}. Retrying in {delay:.0f}s...")

    # Install status-line-aware logging handler to prevent log interleaving
    handler = StatusLineAwareHandler(
        clear_func=clear_status_line,
        update_func=update_status_line,
        lock=progress_lock,
    )
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    level = logging.INFO if verbose else logging.WARNING
    handler.setLevel(level)
    agent_logger = logging.getLogger("backupagent")
    saved_handlers = agent_logger.handlers[:]
    saved_level = agent_logger.level
    saved_propagate = agent_logger.propagate
    for existing in saved_handlers:
        agent_logger.removeHandler(existing)
    agent_logger.addHandler(handler)
    agent_logger.setLevel(level)
    agent_logger.propagate = False

    click.echo(f"Source folder: {backup_config.source_folder or '(not set)'}")
    click.echo(f"Destination folder: {backup_config.destination_folder_id or '(not set)'}\n")

    sessions = SessionStore(db_path)
    history = UploadHistory(db_path)
    try:
        with DriveClient(drive_config) as client:
            orchestrator = UploadOrchestrator(client, sessions, history, backup_config)
            status = run_with_retry(
                lambda: orchestrator.run(on_progress),
                max_attempts=attempts,
                initial_backoff=backoff,
                on_retry=on_retry,
            )
    finally:
        with progress_lock:
            clear_status_line()
        sessions.close()
        history.close()
        agent_logger.removeHandler(handler)
        for existing in saved_handlers:
            agent_logger.addHandler(existing)
        agent_logger.setLevel(saved_level)
        agent_logger.propagate = saved_propagate

    if isinstance(status, Success):
        size = format_file_size(status.file_size)
        if status.deduplicated:
            click.echo(f"✓ {status.file_name} ({size}) is already uploaded.")
        else:
            click.echo(f"✓ Uploaded {status.file_name} ({size}).")
        if status.remote_file_id:
            click.echo(f"  File ID: {status.remote_file_id}")
        return

    if isinstance(status, NeedsConsent):
        click.echo("Authorization required: sign in again and grant access.", err=True)
        if status.auth_challenge:
            click.echo(f"  Server challenge: {status.auth_challenge}", err=True)
        sys.exit(EXIT_NEEDS_CONSENT)

    error = status.error if isinstance(status, Failed) else "Upload did not finish"
    click.echo(click.style(f"✗ {error}", fg="red"), err=True)
    sys.exit(EXIT_FAILED)

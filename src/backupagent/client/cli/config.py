"""Configuration utilities for the backupagent CLI.

This module provides shared configuration functions used across CLI commands.
Settings live in ~/.backupagent/config.json, the access token in the OS
keyring (or the BACKUPAGENT_TOKEN environment variable).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import keyring

from backupagent.core.config import (
    DEFAULT_API_URL,
    DEFAULT_FILE_PATTERN,
    DEFAULT_UPLOAD_URL,
    BackupConfig,
    DriveConfig,
)

KEYRING_SERVICE = "backupagent"
KEYRING_TOKEN_KEY = "access_token"
TOKEN_ENV_VAR = "BACKUPAGENT_TOKEN"
STATE_DB_NAME = "state.db"


def get_config_dir() -> Path:
    """Get the configuration directory for backupagent.

    Returns:
        Path to ~/.backupagent or equivalent.
    """
    return Path.home() / ".backupagent"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db_path() -> Path:
    """Get the path to the SQLite database holding session and history."""
    return get_config_dir() / STATE_DB_NAME


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_backup_config(config: dict[str, Any] | None = None) -> BackupConfig:
    """Build the upload settings from the stored configuration."""
    if config is None:
        config = load_config()
    source = config.get("source_folder")
    return BackupConfig(
        source_folder=Path(source) if source else None,
        destination_folder_id=config.get("destination_folder_id") or None,
        file_pattern=config.get("file_pattern") or DEFAULT_FILE_PATTERN,
        wifi_only=bool(config.get("wifi_only", False)),
    )


def get_drive_config(token: str, config: dict[str, Any] | None = None) -> DriveConfig:
    """Build the endpoint settings from the stored configuration."""
    if config is None:
        config = load_config()
    return DriveConfig(
        token=token,
        api_url=config.get("api_url") or DEFAULT_API_URL,
        upload_url=config.get("upload_url") or DEFAULT_UPLOAD_URL,
        timeout=float(config.get("timeout", 120.0)),
        verify_ssl=bool(config.get("verify_ssl", True)),
    )


def get_access_token() -> str | None:
    """Get the access token, preferring the environment over the keyring."""
    token = os.environ.get(TOKEN_ENV_VAR)
    if token:
        return token
    return keyring.get_password(KEYRING_SERVICE, KEYRING_TOKEN_KEY)


def set_access_token(token: str) -> None:
    """Store the access token in the OS keyring."""
    keyring.set_password(KEYRING_SERVICE, KEYRING_TOKEN_KEY, token)

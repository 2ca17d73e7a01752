"""Shared configuration classes for backupagent.

This module defines the configuration consumed by the upload engine:
- DriveConfig: how to reach the remote storage endpoint
- BackupConfig: what to upload and where to put it
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_API_URL = "https://www.googleapis.com/drive/v3"
DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DEFAULT_FILE_PATTERN = "*.backup"


@dataclass
class DriveConfig:
    """Configuration for connecting to the remote storage endpoint.

    Attributes:
        token: OAuth2 bearer access token.
        api_url: Base URL of the metadata API (used for file lookups).
        upload_url: URL that resumable upload sessions are initiated on.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    token: str
    api_url: str = DEFAULT_API_URL
    upload_url: str = DEFAULT_UPLOAD_URL
    timeout: float = 120.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize endpoint URLs."""
        self.api_url = self.api_url.rstrip("/")
        self.upload_url = self.upload_url.rstrip("/")


@dataclass
class BackupConfig:
    """What to upload and where.

    Attributes:
        source_folder: Local folder that receives backup files.
        destination_folder_id: Remote folder the backup is uploaded into.
        file_pattern: Glob pattern a backup file name must match.
        wifi_only: Network preference for whoever schedules uploads.
            The upload engine itself never reads it.
    """

    source_folder: Path | None = None
    destination_folder_id: str | None = None
    file_pattern: str = DEFAULT_FILE_PATTERN
    wifi_only: bool = False

    def __post_init__(self) -> None:
        if self.source_folder is not None:
            self.source_folder = Path(self.source_folder).expanduser()

    def missing_fields(self) -> list[str]:
        """Return the names of required settings that are not set."""
        missing = []
        if self.source_folder is None:
            missing.append("source_folder")
        if not self.destination_folder_id:
            missing.append("destination_folder_id")
        return missing

    @property
    def is_complete(self) -> bool:
        """True when both a source and a destination are configured."""
        return not self.missing_fields()

"""Core module - Shared configuration, hashing, and types."""

from backupagent.core.config import (
    DEFAULT_API_URL,
    DEFAULT_FILE_PATTERN,
    DEFAULT_UPLOAD_URL,
    BackupConfig,
    DriveConfig,
)
from backupagent.core.hashing import checksums_match, compute_file_digest, compute_file_md5
from backupagent.core.types import UploadOutcome, format_file_size

__all__ = [
    # Config
    "BackupConfig",
    "DEFAULT_API_URL",
    "DEFAULT_FILE_PATTERN",
    "DEFAULT_UPLOAD_URL",
    "DriveConfig",
    # Hashing
    "checksums_match",
    "compute_file_digest",
    "compute_file_md5",
    # Types
    "UploadOutcome",
    "format_file_size",
]

"""Shared types for the upload engine.

This module provides:
- UploadError and subclasses: Failures raised by the orchestrator itself
- ErrorKind, classify_error: Mapping of any exception to a failure category
- UploadStatus variants: Idle, Uploading, Success, Failed, NeedsConsent
- UploadProgress: Progress information passed to callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Union

import httpx

from backupagent.client.api import APIError, AuthenticationError, ProtocolError
from backupagent.client.source import SourceFileError


class UploadError(Exception):
    """Base exception for upload failures."""


class ConfigurationIncompleteError(UploadError):
    """Source folder or destination folder is not configured."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Configuration incomplete: missing {', '.join(missing)}")


class ProtocolViolationError(UploadError):
    """The server stopped following the resumable upload protocol."""


class IntegrityMismatchError(UploadError):
    """The uploaded file's checksum differs from the local file's.

    Attributes:
        local_checksum: Digest of the local file.
        remote_checksum: Digest reported by the server.
        remote_file_id: Id of the (possibly corrupt) remote file.
    """

    def __init__(self, local_checksum: str, remote_checksum: str, remote_file_id: str) -> None:
        self.local_checksum = local_checksum
        self.remote_checksum = remote_checksum
        self.remote_file_id = remote_file_id
        super().__init__(
            f"Checksum mismatch for remote file {remote_file_id}: "
            f"local {local_checksum}, remote {remote_checksum}"
        )


class ErrorKind(Enum):
    """Failure categories, each with its retry policy."""

    CONFIGURATION_INCOMPLETE = ("configuration_incomplete", False)
    AUTH_CONSENT_REQUIRED = ("auth_consent_required", False)
    FILE_UNAVAILABLE = ("file_unavailable", True)
    TRANSIENT = ("transient", True)
    PROTOCOL_VIOLATION = ("protocol_violation", True)
    INTEGRITY_MISMATCH = ("integrity_mismatch", True)

    def __init__(self, label: str, retryable: bool) -> None:
        self.label = label
        self.retryable = retryable


def classify_error(error: BaseException) -> tuple[ErrorKind, str, str]:
    """Map an exception to (kind, short user message, technical detail)."""
    detail = f"{type(error).__name__}: {str(error) or 'no details'}"

    if isinstance(error, AuthenticationError):
        return ErrorKind.AUTH_CONSENT_REQUIRED, "Authorization required", detail
    if isinstance(error, ConfigurationIncompleteError):
        return (
            ErrorKind.CONFIGURATION_INCOMPLETE,
            "Configuration incomplete - set local folder and destination folder",
            detail,
        )
    if isinstance(error, SourceFileError):
        return ErrorKind.FILE_UNAVAILABLE, str(error), detail
    if isinstance(error, (ProtocolError, ProtocolViolationError)):
        return ErrorKind.PROTOCOL_VIOLATION, "Unexpected response from server", detail
    if isinstance(error, IntegrityMismatchError):
        return ErrorKind.INTEGRITY_MISMATCH, "Uploaded file failed verification", detail
    if isinstance(error, APIError):
        return ErrorKind.TRANSIENT, f"Server error (HTTP {error.status_code})", detail
    if isinstance(error, httpx.TimeoutException):
        return ErrorKind.TRANSIENT, "Connection timed out", detail
    if isinstance(error, httpx.RequestError):
        return ErrorKind.TRANSIENT, "Network error", detail
    if isinstance(error, OSError):
        return ErrorKind.TRANSIENT, "I/O error", detail
    return ErrorKind.TRANSIENT, "Upload failed", detail


@dataclass(frozen=True)
class UploadProgress:
    """Progress of the transfer in the current run.

    Attributes:
        bytes_uploaded: Bytes confirmed by the server so far.
        total_bytes: Size of the file.
        speed_bytes_per_sec: Average speed during this run.
        estimated_seconds_remaining: -1 when unknown.
    """

    bytes_uploaded: int
    total_bytes: int
    speed_bytes_per_sec: int = 0
    estimated_seconds_remaining: int = -1

    @property
    def fraction(self) -> float:
        """Completed share in [0, 1]."""
        if self.total_bytes <= 0:
            return 0.0
        return min(max(self.bytes_uploaded / self.total_bytes, 0.0), 1.0)

    @property
    def percent(self) -> int:
        """Completed share as an integer percentage."""
        return int(self.fraction * 100)


# Type alias for progress callback
ProgressCallback = Callable[[UploadProgress], None]


@dataclass(frozen=True)
class Idle:
    """Nothing is happening."""


@dataclass(frozen=True)
class Uploading:
    """An upload is running."""

    progress: UploadProgress | None = None


@dataclass(frozen=True)
class Success:
    """The backup is stored remotely.

    Attributes:
        file_name: Name of the uploaded file.
        file_size: Size in bytes.
        remote_file_id: Id of the remote file.
        deduplicated: True when an identical remote file already existed
            and nothing was transferred.
    """

    file_name: str
    file_size: int
    remote_file_id: str | None = None
    deduplicated: bool = False


@dataclass(frozen=True)
class Failed:
    """The attempt failed."""

    error: str
    kind: ErrorKind | None = None

    @property
    def retryable(self) -> bool:
        return self.kind is None or self.kind.retryable


@dataclass(frozen=True)
class NeedsConsent:
    """The user must authorize access before uploads can continue."""

    auth_challenge: str | None = None


UploadStatus = Union[Idle, Uploading, Success, Failed, NeedsConsent]

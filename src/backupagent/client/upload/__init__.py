"""Resumable upload engine.

This package provides:
- UploadOrchestrator: One crash-safe upload attempt
- run_with_retry: Whole-attempt retry with backoff
- UploadStatus variants, UploadProgress and error types
"""

from backupagent.client.upload.orchestrator import (
    CHUNK_SIZE,
    DEFAULT_MIME_TYPE,
    MAX_STALLED_RESPONSES,
    UploadOrchestrator,
)
from backupagent.client.upload.progress import ProgressTracker
from backupagent.client.upload.retry import run_with_retry
from backupagent.client.upload.types import (
    ConfigurationIncompleteError,
    ErrorKind,
    Failed,
    Idle,
    IntegrityMismatchError,
    NeedsConsent,
    ProgressCallback,
    ProtocolViolationError,
    Success,
    UploadError,
    Uploading,
    UploadProgress,
    UploadStatus,
    classify_error,
)

__all__ = [
    # Orchestrator
    "CHUNK_SIZE",
    "DEFAULT_MIME_TYPE",
    "MAX_STALLED_RESPONSES",
    "UploadOrchestrator",
    # Progress
    "ProgressCallback",
    "ProgressTracker",
    "UploadProgress",
    # Retry
    "run_with_retry",
    # Statuses
    "Failed",
    "Idle",
    "NeedsConsent",
    "Success",
    "Uploading",
    "UploadStatus",
    # Errors
    "ConfigurationIncompleteError",
    "ErrorKind",
    "IntegrityMismatchError",
    "ProtocolViolationError",
    "UploadError",
    "classify_error",
]

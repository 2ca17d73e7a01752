"""Crash-safe resumable upload of the latest backup file.

This module provides:
- UploadOrchestrator: Runs one upload attempt end to end

One run goes through four steps:

1. Resume decision. A stored session is reused only if it is younger than
   six days, targets the configured folder, still matches the local file's
   size and is still known to the server. Otherwise it is discarded.
2. Fresh start. The newest matching backup is located. If the destination
   already holds a file with the same name and size nothing is sent.
   Otherwise a session is initiated and saved before the first chunk.
3. Chunk loop. Chunks are sent strictly in order. The local offset only
   ever moves to what the server confirmed.
4. Completion. The server's checksum (if any) is verified, then the remote
   id is saved into the session, the session is cleared and success is
   recorded. A crash after the id is saved and before the session is
   cleared is recovered on the next run from the saved remote id. A
   session the server reports as already finished goes through the same
   verification.

Any failure leaves the session in place so the next run resumes from the
last confirmed offset.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from backupagent.client.api import (
    AuthenticationError,
    ChunkComplete,
    SessionComplete,
    SessionExpired,
)
from backupagent.client.history import UploadRecord
from backupagent.client.source import (
    SourceFileError,
    SourceReader,
    current_size,
    find_latest_backup,
)
from backupagent.client.state import ResumableUploadSession
from backupagent.client.upload.progress import ProgressTracker
from backupagent.client.upload.types import (
    ConfigurationIncompleteError,
    Failed,
    IntegrityMismatchError,
    NeedsConsent,
    ProgressCallback,
    ProtocolViolationError,
    Success,
    UploadStatus,
    classify_error,
)
from backupagent.core.hashing import checksums_match, compute_file_md5
from backupagent.core.types import UploadOutcome

if TYPE_CHECKING:
    from backupagent.client.api import DriveClient
    from backupagent.client.history import HistoryRecorder
    from backupagent.client.state import SessionStore
    from backupagent.core.config import BackupConfig

logger = logging.getLogger(__name__)

CHUNK_SIZE = 5 * 1024 * 1024  # 5 MiB, a multiple of the required 256 KiB
MAX_STALLED_RESPONSES = 3
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class _Attempt:
    """What is known about the file this run is working on."""

    file_name: str = "unknown"
    file_size: int = 0


class UploadOrchestrator:
    """Uploads the newest backup file, resuming interrupted uploads.

    Only one run may be active at a time. Whoever schedules runs is
    responsible for that, and for retrying failed runs with backoff.
    """

    def __init__(
        self,
        client: DriveClient,
        sessions: SessionStore,
        history: HistoryRecorder,
        config: BackupConfig,
        chunk_size: int = CHUNK_SIZE,
        mime_type: str = DEFAULT_MIME_TYPE,
        max_stalled_responses: int = MAX_STALLED_RESPONSES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: Protocol client for the remote endpoint.
            sessions: Storage for the in-flight session.
            history: Where attempt outcomes are appended.
            config: Source folder, file pattern and destination folder.
            chunk_size: Bytes per chunk.
            mime_type: Content type announced when initiating a session.
            max_stalled_responses: Consecutive non-advancing chunk responses
                tolerated before the run fails.
            clock: Wall clock (epoch seconds), used for session age and
                history timestamps.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._client = client
        self._sessions = sessions
        self._history = history
        self._config = config
        self._chunk_size = chunk_size
        self._mime_type = mime_type
        self._max_stalled_responses = max_stalled_responses
        self._clock = clock

    def run(self, progress_callback: ProgressCallback | None = None) -> UploadStatus:
        """Run one upload attempt.

        Args:
            progress_callback: Called after every chunk the server accepts.

        Returns:
            Success, Failed or NeedsConsent. Never raises for failures of
            the attempt itself.
        """
        attempt = _Attempt()
        try:
            missing = self._config.missing_fields()
            if missing:
                raise ConfigurationIncompleteError(missing)
            return self._run(attempt, progress_callback)
        except AuthenticationError as e:
            logger.warning(f"Authorization required before uploading: {e}")
            return NeedsConsent(auth_challenge=e.challenge)
        except Exception as e:
            kind, message, detail = classify_error(e)
            logger.error(f"Upload of {attempt.file_name} failed ({kind.label}): {detail}")
            self._record_failure(attempt, message, detail)
            return Failed(error=message, kind=kind)

    def _run(self, attempt: _Attempt, progress_callback: ProgressCallback | None) -> UploadStatus:
        session = self._sessions.load()
        if session is not None:
            status = self._try_resume(session, attempt, progress_callback)
            if status is not None:
                return status
        return self._start_fresh(attempt, progress_callback)

    # === Step 1: resume decision ===

    def _try_resume(
        self,
        session: ResumableUploadSession,
        attempt: _Attempt,
        progress_callback: ProgressCallback | None,
    ) -> UploadStatus | None:
        """Continue a stored session.

        Returns:
            The final status, or None if the session was discarded and a
            fresh upload should start.
        """
        attempt.file_name = session.file_name
        attempt.file_size = session.total_bytes

        if session.remote_file_id:
            logger.info(
                f"Upload of {session.file_name} finished in an earlier run "
                f"(file ID {session.remote_file_id}), completing bookkeeping"
            )
            self._sessions.clear()
            return self._record_success(
                session.file_name,
                session.total_bytes,
                session.destination_folder_id,
                session.remote_file_id,
            )

        reason = self._invalid_reason(session)
        if reason:
            self._discard(session, reason)
            return None

        remote = self._client.query_progress(session.session_uri, session.total_bytes)
        if isinstance(remote, SessionExpired):
            self._discard(session, "server no longer knows the session")
            return None
        if isinstance(remote, SessionComplete):
            logger.info(
                f"Server reports {session.file_name} already complete "
                f"(file ID {remote.file_id})"
            )
            # A mismatch here fails again instead of recording success
            complete = ChunkComplete(file_id=remote.file_id, md5_checksum=remote.md5_checksum)
            return self._finish(session, complete)

        confirmed = remote.confirmed_bytes
        if confirmed > session.total_bytes:
            raise ProtocolViolationError(
                f"Server confirmed {confirmed} bytes of a {session.total_bytes} byte file"
            )
        if confirmed < session.bytes_uploaded:
            logger.warning(
                f"Server holds {confirmed} bytes but {session.bytes_uploaded} were "
                "recorded locally, resuming from the server's offset"
            )
        self._sessions.update_bytes_uploaded(confirmed)

        logger.info(
            f"Resuming upload of {session.file_name} at "
            f"{confirmed}/{session.total_bytes} bytes"
        )
        complete = self._transfer(session, confirmed, progress_callback)
        return self._finish(session, complete)

    def _invalid_reason(self, session: ResumableUploadSession) -> str | None:
        """Why a stored session cannot be resumed, or None if it can."""
        now = self._clock()
        if session.is_expired(now):
            return f"session is {session.age(now) / 86400:.1f} days old"
        if session.destination_folder_id != self._config.destination_folder_id:
            return "destination folder changed"
        size = current_size(session.local_file_ref)
        if size is None:
            return "local file no longer exists"
        if size != session.total_bytes:
            return f"local file size changed ({session.total_bytes} -> {size} bytes)"
        return None

    def _discard(self, session: ResumableUploadSession, reason: str) -> None:
        logger.warning(
            f"Discarding upload session for {session.file_name}: {reason}. "
            "Starting fresh."
        )
        self._sessions.clear()

    # === Step 2: fresh start ===

    def _start_fresh(
        self,
        attempt: _Attempt,
        progress_callback: ProgressCallback | None,
    ) -> UploadStatus:
        folder = self._config.source_folder
        folder_id = self._config.destination_folder_id
        if folder is None or not folder_id:
            raise ConfigurationIncompleteError(self._config.missing_fields())

        backup = find_latest_backup(folder, self._config.file_pattern)
        if backup is None:
            raise SourceFileError(
                f"No backup file found in {folder} matching {self._config.file_pattern}"
            )
        attempt.file_name = backup.name
        attempt.file_size = backup.size

        existing = self._client.find_file_by_name(folder_id, backup.name)
        if existing is not None and existing.size == backup.size:
            logger.info(
                f"{backup.name} ({backup.size} bytes) already exists remotely "
                f"as {existing.id}, skipping upload"
            )
            return self._record_success(
                backup.name, backup.size, folder_id, existing.id, deduplicated=True
            )

        session_uri = self._client.initiate(folder_id, backup.name, self._mime_type, backup.size)
        session = ResumableUploadSession(
            session_uri=session_uri,
            local_file_ref=backup.ref,
            file_name=backup.name,
            total_bytes=backup.size,
            bytes_uploaded=0,
            destination_folder_id=folder_id,
            created_at=self._clock(),
        )
        # Saved before any chunk so a crash loses at most the initiation
        self._sessions.save(session)
        logger.info(f"Uploading {backup.name} ({backup.size} bytes)")

        complete = self._transfer(session, 0, progress_callback)
        return self._finish(session, complete)

    # === Step 3: chunk loop ===

    def _transfer(
        self,
        session: ResumableUploadSession,
        start_offset: int,
        progress_callback: ProgressCallback | None,
    ) -> ChunkComplete:
        """Send the file from `start_offset` until the server reports completion.

        Raises:
            ProtocolViolationError: If the server stops advancing, confirms more
                bytes than exist, or never reports completion.
            SourceFileError: If the local file cannot be read.
        """
        total = session.total_bytes
        tracker = ProgressTracker(total, start_offset, progress_callback)
        tracker.report(start_offset)

        offset = start_offset
        stalled = 0
        with SourceReader(Path(session.local_file_ref), total) as reader:
            reader.open(offset)
            while True:
                if total > 0 and offset >= total:
                    raise ProtocolViolationError(
                        f"All {total} bytes confirmed but the server never "
                        "reported completion"
                    )

                data = reader.read_chunk(offset, self._chunk_size)
                result = self._client.upload_chunk(session.session_uri, data, offset, total)

                if isinstance(result, ChunkComplete):
                    logger.info(f"Upload of {session.file_name} complete, file ID {result.file_id}")
                    tracker.report(total)
                    return result

                confirmed = result.confirmed_bytes
                if confirmed > total:
                    raise ProtocolViolationError(
                        f"Server confirmed {confirmed} bytes of a {total} byte file"
                    )
                if confirmed <= offset:
                    stalled += 1
                    logger.warning(
                        f"Server confirmed {confirmed} bytes, no progress past {offset} "
                        f"({stalled}/{self._max_stalled_responses})"
                    )
                    if stalled >= self._max_stalled_responses:
                        raise ProtocolViolationError(
                            f"No upload progress past byte {offset} after "
                            f"{stalled} consecutive responses"
                        )
                    reader.open(offset)
                    continue

                stalled = 0
                offset = confirmed
                self._sessions.update_bytes_uploaded(offset)
                tracker.report(offset)

    # === Step 4: completion ===

    def _finish(self, session: ResumableUploadSession, complete: ChunkComplete) -> UploadStatus:
        if complete.md5_checksum:
            try:
                local = compute_file_md5(Path(session.local_file_ref))
            except OSError as e:
                raise SourceFileError(
                    f"Cannot read {session.file_name} to verify its checksum"
                ) from e
            if not checksums_match(local, complete.md5_checksum):
                raise IntegrityMismatchError(local, complete.md5_checksum, complete.file_id)
            logger.debug(f"Checksum verified for {session.file_name}: {local}")
        else:
            logger.info(f"Server returned no checksum for {session.file_name}, skipping verification")

        # Order matters: a crash after this write is recovered from the saved id
        self._sessions.update_remote_file_id(complete.file_id)
        self._sessions.clear()
        return self._record_success(
            session.file_name,
            session.total_bytes,
            session.destination_folder_id,
            complete.file_id,
        )

    # === History ===

    def _record_success(
        self,
        file_name: str,
        file_size: int,
        folder_id: str,
        remote_file_id: str,
        deduplicated: bool = False,
    ) -> Success:
        self._history.insert(
            UploadRecord(
                timestamp=self._clock(),
                file_name=file_name,
                file_size=file_size,
                status=UploadOutcome.SUCCESS,
                destination_folder_id=folder_id,
                remote_file_id=remote_file_id,
            )
        )
        return Success(
            file_name=file_name,
            file_size=file_size,
            remote_file_id=remote_file_id,
            deduplicated=deduplicated,
        )

    def _record_failure(self, attempt: _Attempt, message: str, detail: str) -> None:
        record = UploadRecord(
            timestamp=self._clock(),
            file_name=attempt.file_name,
            file_size=attempt.file_size,
            status=UploadOutcome.FAILED,
            destination_folder_id=self._config.destination_folder_id or "",
            error_message=message,
            error_detail=detail,
        )
        try:
            self._history.insert(record)
        except Exception as e:
            # The failure itself is what the caller needs to see
            logger.error(f"Could not record failed upload in history: {e}")

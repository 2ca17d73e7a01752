"""Persistence of the in-flight resumable upload session.

This module provides:
- ResumableUploadSession: The one upload that may be in flight
- SessionStore: SQLite-backed single-slot storage for it

Architecture:
    There is never more than one session. The table holds at most one row
    (enforced with CHECK (id = 1)), so save() is a single INSERT OR REPLACE
    and every field becomes visible at once or not at all.

    bytes_uploaded is a fast-path hint. The authoritative offset on resume
    always comes from asking the server.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Remote session URIs are valid for about a week
MAX_SESSION_AGE = 6 * 24 * 60 * 60  # seconds


class SessionNotFoundError(Exception):
    """Raised when updating a session that does not exist."""


@dataclass(frozen=True)
class ResumableUploadSession:
    """A resumable upload started in this or an earlier run.

    Attributes:
        session_uri: Resume token issued by the remote endpoint.
        local_file_ref: Absolute path of the source file.
        file_name: Remote file name, fixed at creation.
        total_bytes: Size of the source file, fixed at creation.
        bytes_uploaded: Last offset confirmed by the server.
        destination_folder_id: Folder the file is uploaded into.
        created_at: Creation timestamp (epoch seconds).
        remote_file_id: Set once the server reports completion.
    """

    session_uri: str
    local_file_ref: str
    file_name: str
    total_bytes: int
    bytes_uploaded: int
    destination_folder_id: str
    created_at: float
    remote_file_id: str | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.bytes_uploaded <= self.total_bytes:
            raise ValueError(
                f"bytes_uploaded {self.bytes_uploaded} outside 0..{self.total_bytes}"
            )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ResumableUploadSession:
        """Create from database row."""
        return cls(
            session_uri=row["session_uri"],
            local_file_ref=row["local_file_ref"],
            file_name=row["file_name"],
            total_bytes=row["total_bytes"],
            bytes_uploaded=row["bytes_uploaded"],
            destination_folder_id=row["destination_folder_id"],
            created_at=row["created_at"],
            remote_file_id=row["remote_file_id"],
        )

    def age(self, now: float | None = None) -> float:
        """Seconds since the session was created."""
        return (time.time() if now is None else now) - self.created_at

    def is_expired(self, now: float | None = None) -> bool:
        """Check whether the remote side has likely forgotten this session."""
        return self.age(now) > MAX_SESSION_AGE


class SessionStore:
    """SQLite-based storage for the single resumable upload session."""

    def __init__(self, db_path: Path) -> None:
        """Open (and create if needed) the session database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=FULL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS upload_session (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                session_uri TEXT NOT NULL,
                local_file_ref TEXT NOT NULL,
                file_name TEXT NOT NULL,
                total_bytes INTEGER NOT NULL,
                bytes_uploaded INTEGER NOT NULL,
                destination_folder_id TEXT NOT NULL,
                created_at REAL NOT NULL,
                remote_file_id TEXT,
                CHECK (bytes_uploaded >= 0 AND bytes_uploaded <= total_bytes)
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def load(self) -> ResumableUploadSession | None:
        """Get the stored session.

        Returns:
            The session, or None if no upload is in flight.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM upload_session WHERE id = 1"
            ).fetchone()
        if row is None:
            return None
        return ResumableUploadSession.from_row(row)

    def save(self, session: ResumableUploadSession) -> None:
        """Store a session, replacing any previous one."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO upload_session (
                    id, session_uri, local_file_ref, file_name, total_bytes,
                    bytes_uploaded, destination_folder_id, created_at, remote_file_id
                ) VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.session_uri,
                    session.local_file_ref,
                    session.file_name,
                    session.total_bytes,
                    session.bytes_uploaded,
                    session.destination_folder_id,
                    session.created_at,
                    session.remote_file_id,
                ),
            )
        logger.debug(f"Saved upload session for {session.file_name}")

    def update_bytes_uploaded(self, bytes_uploaded: int) -> None:
        """Record a newly confirmed offset.

        The stored value never decreases.

        Raises:
            SessionNotFoundError: If no session is stored.
            ValueError: If the offset is outside 0..total_bytes.
        """
        with self._lock:
            session = self.load()
            if session is None:
                raise SessionNotFoundError("No upload session to update")
            if not 0 <= bytes_uploaded <= session.total_bytes:
                raise ValueError(
                    f"bytes_uploaded {bytes_uploaded} outside 0..{session.total_bytes}"
                )
            if bytes_uploaded < session.bytes_uploaded:
                logger.debug(
                    f"Ignoring backwards offset {bytes_uploaded} "
                    f"(stored {session.bytes_uploaded})"
                )
                return
            self._conn.execute(
                "UPDATE upload_session SET bytes_uploaded = ? WHERE id = 1",
                (bytes_uploaded,),
            )

    def update_remote_file_id(self, remote_file_id: str) -> None:
        """Record the id of the finished remote file.

        Raises:
            SessionNotFoundError: If no session is stored.
        """
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE upload_session SET remote_file_id = ? WHERE id = 1",
                (remote_file_id,),
            )
            if cursor.rowcount == 0:
                raise SessionNotFoundError("No upload session to update")

    def clear(self) -> None:
        """Delete the stored session (no-op if there is none)."""
        with self._lock:
            self._conn.execute("DELETE FROM upload_session")
        logger.debug("Cleared upload session")

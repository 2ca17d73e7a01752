"""Append-only log of upload attempts.

This module provides:
- UploadRecord: One finished attempt
- HistoryRecorder: The narrow interface the upload engine writes through
- UploadHistory: SQLite implementation, queryable by recency
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from backupagent.core.types import UploadOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadRecord:
    """Outcome of one upload attempt.

    Attributes:
        timestamp: When the attempt finished (epoch seconds).
        file_name: Name of the backup file, or "unknown".
        file_size: Size in bytes (0 when unknown).
        status: SUCCESS or FAILED.
        destination_folder_id: Folder the file was meant for.
        error_message: Short, user-facing error text.
        error_detail: Technical error text for diagnostics.
        remote_file_id: Id of the remote file on success.
        id: Row id, assigned on insert.
    """

    timestamp: float
    file_name: str
    file_size: int
    status: UploadOutcome
    destination_folder_id: str
    error_message: str | None = None
    error_detail: str | None = None
    remote_file_id: str | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> UploadRecord:
        """Create from database row."""
        return cls(
            id=row["id"],
            timestamp=row["timestamp"],
            file_name=row["file_name"],
            file_size=row["file_size"],
            status=UploadOutcome.parse(row["status"]),
            destination_folder_id=row["destination_folder_id"],
            error_message=row["error_message"],
            error_detail=row["error_detail"],
            remote_file_id=row["remote_file_id"],
        )

    @property
    def succeeded(self) -> bool:
        return self.status is UploadOutcome.SUCCESS


class HistoryRecorder(Protocol):
    """Anything the upload engine can append outcomes to."""

    def insert(self, record: UploadRecord) -> int:
        """Append a record and return its id."""
        ...


class UploadHistory:
    """SQLite-based upload history."""

    def __init__(self, db_path: Path) -> None:
        """Open (and create if needed) the history database.

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

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS upload_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp REAL NOT NULL,
                file_name TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                status TEXT NOT NULL,
                error_message TEXT,
                error_detail TEXT,
                destination_folder_id TEXT NOT NULL,
                remote_file_id TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_upload_history_timestamp
                ON upload_history (timestamp);
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def insert(self, record: UploadRecord) -> int:
        """Append a record.

        Returns:
            The new row id.
        """
        with self._lock:
            cursor = self._conn.execute(
                """
                INSERT INTO upload_history (
                    timestamp, file_name, file_size, status, error_message,
                    error_detail, destination_folder_id, remote_file_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.timestamp,
                    record.file_name,
                    record.file_size,
                    record.status.value,
                    record.error_message,
                    record.error_detail,
                    record.destination_folder_id,
                    record.remote_file_id,
                ),
            )
        row_id = cursor.lastrowid
        if row_id is None:
            raise sqlite3.DatabaseError("INSERT into upload_history returned no row id")
        logger.debug(f"Recorded {record.status.value} for {record.file_name}")
        return row_id

    def list_records(self, limit: int | None = None) -> list[UploadRecord]:
        """List records, newest first.

        Args:
            limit: Maximum number of records to return.
        """
        sql = "SELECT * FROM upload_history ORDER BY timestamp DESC, id DESC"
        params: tuple[int, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [UploadRecord.from_row(row) for row in rows]

    def latest(self) -> UploadRecord | None:
        """Get the most recent record, if any."""
        records = self.list_records(limit=1)
        return records[0] if records else None

    def count(self, status: UploadOutcome | None = None) -> int:
        """Count records, optionally only those with a given status."""
        with self._lock:
            if status is None:
                row = self._conn.execute("SELECT COUNT(*) FROM upload_history").fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM upload_history WHERE status = ?",
                    (status.value,),
                ).fetchone()
        return int(row[0])

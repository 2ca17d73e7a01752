"""Local backup file discovery and reading.

This module provides:
- BackupFile: Identity of the file to upload (path, name, size, mtime)
- find_latest_backup: Newest file in a folder matching a glob pattern
- SourceReader: Offset-addressed chunk reads that survive stream invalidation
"""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)


class SourceFileError(Exception):
    """The local backup file is missing or cannot be read."""


@dataclass(frozen=True)
class BackupFile:
    """A candidate file for upload.

    Attributes:
        path: Absolute path to the file.
        name: File name (used as the remote name).
        size: Size in bytes when discovered.
        mtime: Modification time when discovered.
    """

    path: Path
    name: str
    size: int
    mtime: float

    @property
    def ref(self) -> str:
        """Stable reference stored in the upload session."""
        return str(self.path)

    @classmethod
    def from_path(cls, path: Path) -> BackupFile:
        """Stat a file and build its identity."""
        path = Path(path).resolve()
        stat = path.stat()
        return cls(path=path, name=path.name, size=stat.st_size, mtime=stat.st_mtime)


def find_latest_backup(folder: Path, pattern: str) -> BackupFile | None:
    """Find the most recently modified file matching a pattern.

    Args:
        folder: Folder to search (not recursive).
        pattern: Glob pattern matched against file names.

    Returns:
        The newest matching file, or None if nothing matches.

    Raises:
        SourceFileError: If the folder cannot be listed.
    """
    try:
        entries = list(os.scandir(folder))
    except OSError as e:
        raise SourceFileError(f"Cannot access local folder: {folder}") from e

    latest: BackupFile | None = None
    for entry in entries:
        if not fnmatch.fnmatch(entry.name, pattern):
            continue
        try:
            if not entry.is_file():
                continue
            candidate = BackupFile.from_path(Path(entry.path))
        except OSError:
            # Vanished between listing and stat
            continue
        if latest is None or candidate.mtime > latest.mtime:
            latest = candidate

    if latest is not None:
        logger.debug(f"Latest backup in {folder}: {latest.name} ({latest.size} bytes)")
    return latest


def current_size(ref: str) -> int | None:
    """Size of the file a session points to, or None if it is gone."""
    try:
        path = Path(ref)
        if not path.is_file():
            return None
        return path.stat().st_size
    except OSError:
        return None


class SourceReader:
    """Reads fixed byte ranges of the source file.

    A read that comes back short (the stream went stale, e.g. the file was
    replaced under an open handle) is retried once on a freshly opened
    stream. A second short read is fatal.
    """

    def __init__(self, path: Path, total_bytes: int) -> None:
        self._path = Path(path)
        self._total_bytes = total_bytes
        self._stream: BinaryIO | None = None
        self._position = 0

    def __enter__(self) -> SourceReader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def open(self, offset: int) -> None:
        """(Re)open the stream positioned at `offset`."""
        self.close()
        try:
            stream = open(self._path, "rb")  # noqa: SIM115
        except OSError as e:
            raise SourceFileError(f"Cannot open backup file: {self._path}") from e
        try:
            stream.seek(offset)
        except OSError as e:
            stream.close()
            raise SourceFileError(f"Cannot seek backup file to {offset}") from e
        self._stream = stream
        self._position = offset

    def close(self) -> None:
        """Close the underlying stream."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def read_chunk(self, offset: int, size: int) -> bytes:
        """Read the chunk starting at `offset`.

        Returns exactly min(size, total_bytes - offset) bytes.

        Raises:
            SourceFileError: If the bytes cannot be read even after reopening.
        """
        expected = max(0, min(size, self._total_bytes - offset))
        if self._stream is None or self._position != offset:
            self.open(offset)

        data = self._read(expected)
        if len(data) < expected:
            logger.warning(
                f"Short read at offset {offset} ({len(data)}/{expected} bytes), "
                "reopening source"
            )
            self.open(offset)
            data = self._read(expected)
            if len(data) < expected:
                raise SourceFileError(
                    f"Backup file became unreadable at offset {offset} "
                    f"({len(data)}/{expected} bytes)"
                )

        self._position = offset + len(data)
        return data

    def _read(self, expected: int) -> bytes:
        """Read up to `expected` bytes, looping over partial reads."""
        if self._stream is None:
            raise SourceFileError(f"Backup file is not open: {self._path}")
        buf = bytearray()
        try:
            while len(buf) < expected:
                block = self._stream.read(expected - len(buf))
                if not block:
                    break
                buf.extend(block)
        except OSError as e:
            logger.warning(f"Read error on backup file: {e}")
        return bytes(buf)

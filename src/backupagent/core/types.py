"""Shared types for backupagent.

This module defines enums used by both the upload engine and the history log.
"""

from __future__ import annotations

from enum import Enum


class UploadOutcome(str, Enum):
    """Outcome of one upload attempt as stored in history."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: str) -> UploadOutcome:
        """Parse a stored value, treating anything unknown as FAILED."""
        try:
            return cls(value)
        except ValueError:
            return cls.FAILED


def format_file_size(size: int) -> str:
    """Format a byte count as a human readable string.

    Args:
        size: Size in bytes.

    Returns:
        A string like "1.5 GB", "256.3 MB" or "512 KB".
    """
    kb = size / 1024.0
    mb = kb / 1024.0
    gb = mb / 1024.0
    if gb >= 1.0:
        return f"{gb:.1f} GB"
    if mb >= 1.0:
        return f"{mb:.1f} MB"
    return f"{kb:.0f} KB"

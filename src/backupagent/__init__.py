"""backupagent - Crash-safe resumable backup uploads."""

__version__ = "0.1.0"

"""Speed and ETA bookkeeping for progress callbacks."""

from __future__ import annotations

import time
from collections.abc import Callable

from backupagent.client.upload.types import ProgressCallback, UploadProgress


class ProgressTracker:
    """Turns confirmed offsets into UploadProgress reports.

    Speed only counts bytes sent during this run, so a resumed upload
    does not report the bytes sent by an earlier run as instant.
    """

    def __init__(
        self,
        total_bytes: int,
        start_offset: int,
        callback: ProgressCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._total_bytes = total_bytes
        self._start_offset = start_offset
        self._callback = callback
        self._clock = clock
        self._started = clock()

    def snapshot(self, bytes_uploaded: int) -> UploadProgress:
        """Build a progress report for the given confirmed offset."""
        elapsed = self._clock() - self._started
        sent = bytes_uploaded - self._start_offset
        speed = int(sent / elapsed) if elapsed > 0 and sent > 0 else 0
        remaining = self._total_bytes - bytes_uploaded
        if remaining <= 0:
            eta = 0
        elif speed > 0:
            eta = int(remaining / speed)
        else:
            eta = -1
        return UploadProgress(
            bytes_uploaded=bytes_uploaded,
            total_bytes=self._total_bytes,
            speed_bytes_per_sec=speed,
            estimated_seconds_remaining=eta,
        )

    def report(self, bytes_uploaded: int) -> None:
        """Send a progress report to the callback, if any."""
        if self._callback:
            self._callback(self.snapshot(bytes_uploaded))

"""Tests for progress reporting."""

from unittest.mock import MagicMock

from backupagent.client.upload.progress import ProgressTracker
from backupagent.client.upload.types import UploadProgress


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestUploadProgress:
    """Tests for UploadProgress."""

    def test_percent(self) -> None:
        assert UploadProgress(bytes_uploaded=250, total_bytes=1000).percent == 25
        assert UploadProgress(bytes_uploaded=1000, total_bytes=1000).percent == 100

    def test_empty_file(self) -> None:
        """A zero-byte file has no meaningful fraction."""
        assert UploadProgress(bytes_uploaded=0, total_bytes=0).fraction == 0.0


class TestProgressTracker:
    """Tests for ProgressTracker."""

    def test_speed_and_eta(self) -> None:
        clock = FakeClock()
        tracker = ProgressTracker(total_bytes=1000, start_offset=0, clock=clock)
        clock.now += 2.0

        progress = tracker.snapshot(200)

        assert progress.speed_bytes_per_sec == 100
        assert progress.estimated_seconds_remaining == 8

    def test_resumed_bytes_do_not_count_as_speed(self) -> None:
        """Only bytes sent since the tracker started count."""
        clock = FakeClock()
        tracker = ProgressTracker(total_bytes=1000, start_offset=600, clock=clock)
        clock.now += 1.0

        progress = tracker.snapshot(700)

        assert progress.speed_bytes_per_sec == 100
        assert progress.estimated_seconds_remaining == 3

    def test_unknown_eta_before_any_progress(self) -> None:
        tracker = ProgressTracker(total_bytes=1000, start_offset=0, clock=FakeClock())

        progress = tracker.snapshot(0)

        assert progress.speed_bytes_per_sec == 0
        assert progress.estimated_seconds_remaining == -1

    def test_done(self) -> None:
        tracker = ProgressTracker(total_bytes=1000, start_offset=0, clock=FakeClock())
        assert tracker.snapshot(1000).estimated_seconds_remaining == 0

    def test_report_calls_callback(self) -> None:
        callback = MagicMock()
        tracker = ProgressTracker(total_bytes=1000, start_offset=0, callback=callback, clock=FakeClock())

        tracker.report(500)

        callback.assert_called_once()
        assert callback.call_args[0][0].bytes_uploaded == 500

    def test_report_without_callback(self) -> None:
        """Reporting with no callback is a no-op."""
        ProgressTracker(total_bytes=1000, start_offset=0).report(500)

"""Tests for whole-attempt retry with backoff."""

from unittest.mock import MagicMock

import pytest

from backupagent.client.upload.retry import run_with_retry
from backupagent.client.upload.types import ErrorKind, Failed, NeedsConsent, Success

SUCCESS = Success(file_name="db.backup", file_size=10, remote_file_id="file-1")
TRANSIENT = Failed(error="Network error", kind=ErrorKind.TRANSIENT)


class TestRunWithRetry:
    """Tests for run_with_retry."""

    def test_success_first_try(self) -> None:
        """Should not sleep when the first attempt succeeds."""
        attempt = MagicMock(return_value=SUCCESS)
        sleep = MagicMock()

        assert run_with_retry(attempt, sleep=sleep) is SUCCESS
        attempt.assert_called_once()
        sleep.assert_not_called()

    def test_retries_then_succeeds(self) -> None:
        attempt = MagicMock(side_effect=[TRANSIENT, TRANSIENT, SUCCESS])
        sleep = MagicMock()

        assert run_with_retry(attempt, max_attempts=3, sleep=sleep) is SUCCESS
        assert attempt.call_count == 3

    def test_exponential_backoff(self) -> None:
        """Delays should double and stop at the maximum."""
        attempt = MagicMock(return_value=TRANSIENT)
        delays: list[float] = []

        status = run_with_retry(
            attempt,
            max_attempts=5,
            initial_backoff=30.0,
            max_backoff=100.0,
            sleep=delays.append,
        )

        assert status is TRANSIENT
        assert attempt.call_count == 5
        assert delays == [30.0, 60.0, 100.0, 100.0]

    def test_gives_up_after_max_attempts(self) -> None:
        attempt = MagicMock(return_value=TRANSIENT)

        status = run_with_retry(attempt, max_attempts=2, sleep=MagicMock())

        assert status is TRANSIENT
        assert attempt.call_count == 2

    def test_non_retryable_failure_stops(self) -> None:
        """Incomplete configuration is not retried."""
        failure = Failed(error="Configuration incomplete", kind=ErrorKind.CONFIGURATION_INCOMPLETE)
        attempt = MagicMock(return_value=failure)
        sleep = MagicMock()

        assert run_with_retry(attempt, sleep=sleep) is failure
        attempt.assert_called_once()
        sleep.assert_not_called()

    def test_needs_consent_stops(self) -> None:
        """A consent request ends the loop immediately."""
        consent = NeedsConsent(auth_challenge="Bearer")
        attempt = MagicMock(side_effect=[TRANSIENT, consent])

        assert run_with_retry(attempt, max_attempts=5, sleep=MagicMock()) is consent
        assert attempt.call_count == 2

    def test_on_retry_callback(self) -> None:
        attempt = MagicMock(side_effect=[TRANSIENT, SUCCESS])
        on_retry = MagicMock()

        run_with_retry(attempt, initial_backoff=5.0, sleep=MagicMock(), on_retry=on_retry)

        on_retry.assert_called_once_with(1, TRANSIENT, 5.0)

    def test_invalid_max_attempts(self) -> None:
        with pytest.raises(ValueError):
            run_with_retry(MagicMock(), max_attempts=0)

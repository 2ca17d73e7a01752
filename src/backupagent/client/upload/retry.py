"""Whole-attempt retry with exponential backoff.

This module provides:
- run_with_retry: Re-run failed upload attempts with exponential backoff

This is the outer of the two retry layers. The orchestrator only retries a
chunk the server did not advance on, within a single run. Everything else
ends the run with a Failed status and leaves the session stored, and this
loop (or any other scheduler) starts a new run that resumes from the
server's confirmed offset.

Contract with the orchestrator:
- Success ends the loop.
- NeedsConsent ends the loop without using up an attempt; a user must act.
- Failed with a non-retryable kind (incomplete configuration) ends the loop.
- Any other Failed is retried until attempts run out.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from backupagent.client.upload.types import Failed, UploadStatus

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_BACKOFF = 30.0  # seconds
DEFAULT_MAX_BACKOFF = 30.0 * 60  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def run_with_retry(
    attempt: Callable[[], UploadStatus],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, Failed, float], None] | None = None,
) -> UploadStatus:
    """Run upload attempts until one succeeds or retrying stops making sense.

    Args:
        attempt: Runs one upload attempt (usually UploadOrchestrator.run).
        max_attempts: Total number of attempts, including the first.
        initial_backoff: Delay before the first retry in seconds.
        max_backoff: Upper bound for the delay.
        backoff_multiplier: Growth factor of the delay per retry.
        sleep: Function used to wait between attempts.
        on_retry: Called with (attempt number, failure, delay) before waiting.

    Returns:
        The status of the last attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    backoff = initial_backoff
    number = 1
    while True:
        status = attempt()
        if not isinstance(status, Failed):
            return status
        if not status.retryable:
            logger.error(f"Upload failed, not retrying: {status.error}")
            return status
        if number >= max_attempts:
            logger.error(f"All {max_attempts} upload attempts failed: {status.error}")
            return status

        logger.warning(
            f"Attempt {number}/{max_attempts} failed: {status.error}. "
            f"Retrying in {backoff:.1f}s..."
        )
        if on_retry:
            on_retry(number, status, backoff)
        sleep(backoff)
        backoff = min(backoff * backoff_multiplier, max_backoff)
        number += 1

"""
Retry configuration for failed reconciliations with exponential backoff.

This module provides RetryConfig for calculating requeue delays with
exponential backoff and jitter.

Only TransientError failures are retried; validation and unexpected
errors wait for the next periodic resync or a new trigger.
"""

import random
from dataclasses import dataclass

from reconciler_core.exceptions import TransientError


@dataclass
class RetryConfig:
    """
    Configuration for reconciliation retry behavior.

    Attributes:
        max_attempts: Maximum number of retry attempts (default 3)
        min_wait_seconds: Minimum wait before first retry (default 1.0)
        max_wait_seconds: Maximum wait between retries (default 60.0)
        exponential_base: Base for exponential calculation (default 2.0)
        jitter_fraction: Fraction of wait time to add as jitter (default 0.5)

    Example:
        config = RetryConfig(max_attempts=5, min_wait_seconds=2.0)
        delay = config.delay_seconds(attempt=1)
        # Returns ~4-6 seconds (4s base + jitter)
    """

    max_attempts: int = 3
    min_wait_seconds: float = 1.0
    max_wait_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter_fraction: float = 0.5

    def delay_seconds(self, attempt: int) -> float:
        """
        Calculate the requeue delay with exponential backoff + jitter.

        Formula: min(max_wait, min_wait * base^attempt) + random(0, wait * jitter)

        Args:
            attempt: The attempt number (0 for first retry, 1 for second, etc.)

        Returns:
            Seconds to wait before the next attempt
        """
        wait = min(
            self.max_wait_seconds,
            self.min_wait_seconds * (self.exponential_base**attempt),
        )
        jitter = random.uniform(0, wait * self.jitter_fraction)
        return wait + jitter

    def should_retry(self, error: BaseException, retry_count: int) -> bool:
        """
        Check if a failed reconciliation should be requeued.

        Args:
            error: The failure (PhaseFailedError causes are unwrapped by the caller)
            retry_count: Current number of retries made

        Returns:
            True for transient errors while retry_count < max_attempts
        """
        return isinstance(error, TransientError) and retry_count < self.max_attempts

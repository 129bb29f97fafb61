"""Failure policy for transcode job attempts.

The default policy makes every failure terminal for the message: one
attempt, no dead-letter queue, reject without requeue. Raising
``max_attempts`` turns on bounded retry with exponential backoff, and a
dead-letter queue collects jobs whose attempts are exhausted.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from hlspipe.core.config import Settings


class FailureAction(str, Enum):
    """What to do with the queue message of a failed attempt."""
    DROP = "drop"  # nack without requeue
    RETRY = "retry"  # republish with the next attempt number, ack original
    DEAD_LETTER = "dead_letter"  # publish to the dead-letter queue, ack original


@dataclass
class RetryPolicy:
    """Retry behavior with exponential backoff."""
    max_attempts: int = 1
    initial_delay: float = 10.0
    max_delay: float = 120.0
    backoff_multiplier: float = 2.0
    dead_letter_queue: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.TRANSCODE_MAX_ATTEMPTS),
            initial_delay=settings.TRANSCODE_RETRY_INITIAL_DELAY,
            max_delay=settings.TRANSCODE_RETRY_MAX_DELAY,
            backoff_multiplier=settings.TRANSCODE_RETRY_BACKOFF,
            dead_letter_queue=settings.TRANSCODE_DEAD_LETTER_QUEUE or None,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay before the attempt following ``attempt``.

        Args:
            attempt: The attempt that just failed (1-indexed).

        Returns:
            The delay in seconds, capped at max_delay.
        """
        if attempt < 1:
            return self.initial_delay

        delay = self.initial_delay * math.pow(self.backoff_multiplier, attempt - 1)
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def action_for(self, attempt: int, malformed: bool = False) -> FailureAction:
        """Decide the fate of a failed attempt.

        Malformed payloads can never become valid and are always dropped.
        """
        if malformed:
            return FailureAction.DROP
        if self.should_retry(attempt):
            return FailureAction.RETRY
        if self.dead_letter_queue:
            return FailureAction.DEAD_LETTER
        return FailureAction.DROP

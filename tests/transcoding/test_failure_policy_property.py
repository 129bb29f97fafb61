"""Property-based tests for the transcode failure policy.

**Feature: hlspipe, Property 5: Failure Policy**
"""

import math

from hypothesis import given, settings, strategies as st

from hlspipe.core.config import Settings
from hlspipe.modules.transcoding.policy import FailureAction, RetryPolicy


class TestDefaultPolicy:
    """The default policy never retries and never dead-letters."""

    @given(attempt=st.integers(min_value=1, max_value=50))
    @settings(max_examples=50)
    def test_every_failure_is_dropped(self, attempt: int) -> None:
        assert RetryPolicy().action_for(attempt) is FailureAction.DROP

    def test_from_default_settings(self) -> None:
        policy = RetryPolicy.from_settings(Settings())

        assert policy.max_attempts == 1
        assert policy.dead_letter_queue is None


class TestRetryBackoff:
    """**Feature: hlspipe, Property 5: Failure Policy**"""

    @given(
        initial_delay=st.floats(min_value=0.1, max_value=10.0),
        max_delay=st.floats(min_value=10.0, max_value=1000.0),
        backoff_multiplier=st.floats(min_value=1.1, max_value=5.0),
        attempt=st.integers(min_value=1, max_value=20),
    )
    @settings(max_examples=100)
    def test_delay_follows_exponential_pattern(
        self, initial_delay: float, max_delay: float, backoff_multiplier: float, attempt: int
    ) -> None:
        policy = RetryPolicy(
            max_attempts=20,
            initial_delay=initial_delay,
            max_delay=max_delay,
            backoff_multiplier=backoff_multiplier,
        )
        expected = min(initial_delay * math.pow(backoff_multiplier, attempt - 1), max_delay)
        assert abs(policy.calculate_delay(attempt) - expected) < 0.0001

    @given(
        max_attempts=st.integers(min_value=1, max_value=10),
        attempt=st.integers(min_value=1, max_value=15),
        dead_letter=st.sampled_from([None, "transcode_dlq"]),
    )
    @settings(max_examples=100)
    def test_action_for_attempt(self, max_attempts: int, attempt: int, dead_letter) -> None:
        """Attempts below the limit retry; exhausted attempts dead-letter when
        a queue is configured and are dropped otherwise."""
        policy = RetryPolicy(max_attempts=max_attempts, dead_letter_queue=dead_letter)

        action = policy.action_for(attempt)

        if attempt < max_attempts:
            assert action is FailureAction.RETRY
        elif dead_letter:
            assert action is FailureAction.DEAD_LETTER
        else:
            assert action is FailureAction.DROP

    @given(max_attempts=st.integers(min_value=1, max_value=10))
    @settings(max_examples=20)
    def test_malformed_is_always_dropped(self, max_attempts: int) -> None:
        policy = RetryPolicy(max_attempts=max_attempts, dead_letter_queue="transcode_dlq")
        assert policy.action_for(1, malformed=True) is FailureAction.DROP

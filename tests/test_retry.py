# tests/test_retry.py
"""
Tests for RetryPolicy classification and backoff.
"""

from types import SimpleNamespace

import pytest

from need_miner.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidRequestError,
    RateLimitedError,
    ServiceUnavailableError,
    StructuredOutputError,
    TransientError,
    TransportTimeoutError,
)
from need_miner.llm.retry import RetryPolicy


class StatusError(Exception):
    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class ResponseError(Exception):
    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.response = SimpleNamespace(status_code=status_code)


class TestBackoff:
    def test_doubles_per_attempt(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0)
        assert [policy.backoff_delay(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_by_max_delay(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
        assert policy.backoff_delay(10) == 5.0

    def test_zero_before_first_attempt(self):
        assert RetryPolicy().backoff_delay(0) == 0.0

    def test_monotone_without_jitter(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=10.0)
        delays = [policy.backoff_delay(n) for n in range(1, 12)]
        assert delays == sorted(delays)

    def test_jitter_never_shrinks_past_the_cap(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0, jitter=True)
        for seed in range(20):
            policy.seed(seed)
            delays = [policy.backoff_delay(n) for n in range(1, 10)]
            assert delays == sorted(delays)
            assert delays[4:] == [10.0] * 5

    def test_jitter_stays_in_range_and_is_seedable(self):
        policy = RetryPolicy(base_delay=2.0, max_delay=60.0, jitter=True)
        policy.seed(42)
        first = [policy.backoff_delay(n) for n in range(1, 6)]
        policy.seed(42)
        second = [policy.backoff_delay(n) for n in range(1, 6)]

        assert first == second
        for n, delay in enumerate(first, start=1):
            full = 2.0 * 2 ** (n - 1)
            assert full / 2 <= delay <= full


class TestClassification:
    @pytest.mark.parametrize(
        "error",
        [
            TransientError("reset"),
            TransportTimeoutError("slow"),
            RateLimitedError("429", retry_after=2),
            ServiceUnavailableError("503", status_code=503),
            StructuredOutputError("not json"),
            ConnectionResetError("reset by peer"),
            ConnectionRefusedError("refused"),
            TimeoutError(),
            StatusError(429),
            StatusError(502),
            ResponseError(500),
        ],
    )
    def test_retryable(self, error):
        assert RetryPolicy().should_retry(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            AuthenticationError("bad key", status_code=401),
            InvalidRequestError("bad input", status_code=400),
            ConfigurationError("missing", config_key="LLM_API_KEY"),
            ValueError("bug"),
            StatusError(404),
            ResponseError(422),
        ],
    )
    def test_fatal(self, error):
        assert RetryPolicy().should_retry(error) is False

    def test_explicit_retryable_flag_wins(self):
        from need_miner.exceptions import NeedMinerError

        assert RetryPolicy().should_retry(NeedMinerError("x", retryable=True)) is True
        assert RetryPolicy().should_retry(NeedMinerError("x")) is False


class TestAttemptBudget:
    def test_has_attempts_left(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.has_attempts_left(1)
        assert policy.has_attempts_left(2)
        assert not policy.has_attempts_left(3)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

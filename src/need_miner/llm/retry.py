# need_miner/llm/retry.py
"""
Retry policy shared by every transport.

The policy only classifies and computes delays; the gateway owns the loop,
so backoff is implemented once instead of per provider.

Classification:
- retryable: connection reset/refused/timeout, HTTP 429, HTTP >= 500,
  structured-output failures, anything flagged ``retryable=True``
- fatal: everything else (bad input, authentication, other 4xx)
"""

from __future__ import annotations

import random

from pydantic import BaseModel, Field, PrivateAttr

from need_miner.exceptions import NeedMinerError


def _status_code(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


class RetryPolicy(BaseModel):
    """
    Exponential backoff with an optional equal-jitter spread.

    Delay for attempt n (1-indexed) is ``min(max_delay, base_delay * 2**(n-1))``.
    With jitter the delay is drawn from ``[d/2, d]`` until the cap is reached;
    capped attempts wait exactly ``max_delay``. Delays never shrink as n grows.
    """

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    jitter: bool = False

    _rng: random.Random = PrivateAttr(default_factory=random.Random)

    def seed(self, seed: int) -> None:
        """Make jittered delays reproducible."""
        self._rng.seed(seed)

    def should_retry(self, error: BaseException) -> bool:
        if isinstance(error, NeedMinerError):
            return error.retryable

        # ConnectionError covers reset/refused/aborted; TimeoutError covers asyncio timeouts
        if isinstance(error, (ConnectionError, TimeoutError)):
            return True

        status = _status_code(error)
        if status is not None:
            return status == 429 or status >= 500

        return False

    def backoff_delay(self, attempt: int) -> float:
        if attempt < 1:
            return 0.0
        delay = self.base_delay * (2 ** (attempt - 1))
        if delay >= self.max_delay:
            return self.max_delay
        if self.jitter:
            delay = self._rng.uniform(delay / 2, delay)
        return delay

    def has_attempts_left(self, attempt: int) -> bool:
        return attempt < self.max_attempts

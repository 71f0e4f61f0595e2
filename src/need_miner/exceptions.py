# need_miner/exceptions.py
"""
Error hierarchy for need_miner.

Every error carries a ``retryable`` flag so the retry policy can classify
failures without knowing which transport raised them:

- TransientError: timeouts, resets, rate limits, 5xx. Retried with backoff.
- StructuredOutputError: JSON was required but could not be obtained.
  Retried like a transient error, since resampling usually fixes it.
- PermanentError: caller misconfiguration, bad credentials, 4xx. Never retried.
"""

from __future__ import annotations


class NeedMinerError(Exception):
    """Base exception for all need_miner errors."""

    retryable: bool = False

    def __init__(self, message: str = "", *, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class TransientError(NeedMinerError):
    """The operation may succeed if repeated."""

    retryable = True

    def __init__(self, message: str = "", *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransportTimeoutError(TransientError):
    """A transport call exceeded its timeout or lost its connection."""


class RateLimitedError(TransientError):
    """Upstream answered 429."""

    def __init__(self, message: str = "", *, retry_after: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ServiceUnavailableError(TransientError):
    """Upstream answered with a 5xx status."""


class StructuredOutputError(NeedMinerError):
    """A structured (JSON object) response was required but not produced."""

    retryable = True

    def __init__(self, message: str = "", *, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class PermanentError(NeedMinerError):
    """Retrying will not help."""

    def __init__(self, message: str = "", *, status_code: int | None = None):
        super().__init__(message, retryable=False)
        self.status_code = status_code


class AuthenticationError(PermanentError):
    """Credentials were rejected (401/403)."""


class InvalidRequestError(PermanentError):
    """The request itself was malformed (other 4xx, bad caller input)."""


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    def __init__(self, message: str = "", *, config_key: str = ""):
        super().__init__(message)
        self.config_key = config_key


class SessionNotFound(PermanentError):
    """Raised when a conversational session id is unknown."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id

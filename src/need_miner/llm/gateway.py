# need_miner/llm/gateway.py
"""
LLM Gateway - the single entry point for text-generation calls.

One call runs through:

    build messages -> fingerprint -> cache lookup -> retry loop over the
    transport (each attempt under a timeout) -> repair-parse -> structural
    check -> cache / session write

Conversational calls (``session_id`` set) skip the cache entirely since
they are not idempotent. When ``strict_format`` is set, anything other than
a non-empty JSON object counts as a retryable StructuredOutputError.

Retryable failures that outlive the attempt budget produce a
``DegradedResult`` instead of an exception, so one failed sub-analysis does
not abort a multi-step workflow. Fatal errors propagate immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import BaseModel, Field

from need_miner.base_models import DictCompatModel
from need_miner.config import DEFAULT_SYSTEM_PROMPT, Settings
from need_miner.exceptions import RateLimitedError, StructuredOutputError
from need_miner.llm.cache import FileCacheStore, ResponseCache, compute_fingerprint
from need_miner.llm.repair import ResponseFormat, ResponseRepairParser, is_parse_failure
from need_miner.llm.retry import RetryPolicy
from need_miner.llm.session_context import ChatMessage, MessageRole, SessionContext
from need_miner.llm.transports import Transport, TransportRequest, create_transport

logger = logging.getLogger(__name__)


class CallOptions(BaseModel):
    """Per-call options for ``LLMGateway.call``."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model: str | None = Field(default=None, description="Overrides the configured model")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = None
    format: ResponseFormat = ResponseFormat.JSON
    strict_format: bool = False
    session_id: str | None = None
    use_cache: bool = True
    degrade_on_failure: bool = Field(
        default=True,
        description="Return a DegradedResult after exhausting retries instead of re-raising the last error",
    )


class DegradedResult(DictCompatModel):
    """Best-effort result returned when every attempt failed."""

    error: bool = True
    message: str
    attempts: int = 0
    raw: str | None = None


def is_degraded(value: Any) -> bool:
    return isinstance(value, DegradedResult)


def is_structured_object(value: Any) -> bool:
    """True for a non-empty keyed object that is not a parse-failure sentinel."""
    return isinstance(value, dict) and bool(value) and not value.get("parse_error", False)


class GatewayStats(BaseModel):
    """Counters across the gateway's lifetime."""

    calls: int = 0
    cache_hits: int = 0
    transport_calls: int = 0
    retries: int = 0
    structured_failures: int = 0
    degraded: int = 0


class LLMGateway:
    """
    Resilient front for a single configured transport.

    Examples:
        ```python
        gateway = LLMGateway.from_settings(Settings.from_env())
        result = await gateway.call(
            "Rate the commercial value of these keywords ...",
            CallOptions(strict_format=True),
        )
        if is_degraded(result):
            ...
        ```
    """

    def __init__(
        self,
        transport: Transport,
        *,
        settings: Settings | None = None,
        cache: ResponseCache | None = None,
        sessions: SessionContext | None = None,
        retry_policy: RetryPolicy | None = None,
        parser: ResponseRepairParser | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.settings = settings or Settings()
        self.transport = transport
        self._log = logger or logging.getLogger(__name__)
        self.cache = cache if cache is not None else ResponseCache(ttl=self.settings.cache_ttl, logger=self._log)
        self.sessions = sessions if sessions is not None else SessionContext(max_context_length=self.settings.max_context_length)
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=self.settings.max_retries)
        self.parser = parser or ResponseRepairParser(logger=self._log)
        self._sleep = sleep or asyncio.sleep
        self._stats = GatewayStats()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> LLMGateway:
        """Build a gateway with a file-backed cache under ``settings.cache_dir``."""
        transport = kwargs.pop("transport", None) or create_transport(settings)
        cache = kwargs.pop("cache", None) or ResponseCache(FileCacheStore(settings.cache_dir), ttl=settings.cache_ttl)
        return cls(transport, settings=settings, cache=cache, **kwargs)

    @property
    def stats(self) -> GatewayStats:
        return self._stats

    def close_session(self, session_id: str) -> bool:
        return self.sessions.close(session_id)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _build_messages(self, prompt: str, options: CallOptions) -> list[dict[str, str]]:
        user = {"role": MessageRole.USER.value, "content": prompt}
        if options.session_id:
            self.sessions.open(options.session_id, options.system_prompt)
            # Leave one slot for the incoming user turn
            history = [m.to_dict() for m in self.sessions.window(options.session_id, reserve=1)]
            return [*history, user]
        return [{"role": MessageRole.SYSTEM.value, "content": options.system_prompt}, user]

    def _check_structure(self, value: Any, raw: str, options: CallOptions) -> None:
        if options.strict_format and not is_structured_object(value):
            self._stats.structured_failures += 1
            kind = "unparseable" if is_parse_failure(value) else type(value).__name__
            raise StructuredOutputError(f"Expected a non-empty JSON object, got {kind}", raw=raw)

    async def call(self, prompt: str, options: CallOptions | None = None) -> Any:
        """
        Run one logical LLM call.

        Args:
            prompt: The user turn.
            options: Call options; defaults to a JSON, non-strict, cached call.

        Returns:
            The parsed value (dict, list, scalar or ``ParseFailure`` when not
            strict), the stripped text for ``ResponseFormat.TEXT``, or a
            ``DegradedResult`` when retries were exhausted.
        """
        options = options or CallOptions()
        self._stats.calls += 1

        model = options.model or self.settings.model
        request = TransportRequest(
            model=model,
            temperature=options.temperature,
            max_tokens=options.max_tokens or self.settings.max_tokens,
            json_requested=options.format == ResponseFormat.JSON,
        )
        messages = self._build_messages(prompt, options)
        session_call = bool(options.session_id)
        cacheable = options.use_cache and not session_call

        fingerprint: str | None = None
        if cacheable:
            fingerprint = compute_fingerprint(messages, model, request.temperature, request.json_requested)
            cached = await self.cache.get(fingerprint)
            if cached is not None:
                cached_value = self.parser.parse(cached, options.format)
                if not options.strict_format or is_structured_object(cached_value):
                    self._stats.cache_hits += 1
                    self._log.debug(f"Cache hit for {fingerprint[:12]}")
                    return cached_value
                self._log.warning(f"Cached response {fingerprint[:12]} fails the structure check, refetching")
                await self.cache.invalidate(fingerprint)

        attempt = 0
        raw: str | None = None
        value: Any = None
        succeeded = False
        last_error: Exception | None = None

        while not succeeded:
            attempt += 1
            try:
                self._stats.transport_calls += 1
                async with asyncio.timeout(self.settings.request_timeout):
                    raw = await self.transport.send(messages, request)
                value = self.parser.parse(raw, options.format)
                self._check_structure(value, raw, options)
                succeeded = True
            except Exception as e:
                if not self.retry_policy.should_retry(e):
                    self._log.error(f"LLM call failed with a non-retryable error: {e}")
                    raise
                last_error = e
                if not self.retry_policy.has_attempts_left(attempt):
                    break

                delay = self.retry_policy.backoff_delay(attempt)
                if isinstance(e, RateLimitedError) and e.retry_after:
                    delay = min(max(delay, e.retry_after), self.retry_policy.max_delay)
                self._stats.retries += 1
                self._log.warning(
                    f"LLM call attempt {attempt}/{self.retry_policy.max_attempts} failed: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        if not succeeded:
            return self._degrade(last_error, attempt, raw, options)

        if session_call:
            self.sessions.append(options.session_id, ChatMessage(role=MessageRole.USER, content=prompt))
            self.sessions.append(options.session_id, ChatMessage(role=MessageRole.ASSISTANT, content=raw))
        elif cacheable and fingerprint is not None and not is_parse_failure(value):
            await self.cache.put(fingerprint, raw, model)

        if attempt > 1:
            self._log.info(f"LLM call succeeded on attempt {attempt}")
        return value

    def _degrade(self, error: Exception | None, attempts: int, raw: str | None, options: CallOptions) -> DegradedResult:
        self._stats.degraded += 1
        self._log.error(f"LLM call degraded after {attempts} attempts: {error}")
        if not options.degrade_on_failure and error is not None:
            raise error
        return DegradedResult(message=str(error) if error else "LLM call failed", attempts=attempts, raw=raw)

    async def analyze(self, prompt: str, analysis_type: str, options: CallOptions | None = None) -> Any:
        """
        Run a named analysis task.

        JSON analyses are strict unless the caller explicitly passed options
        with ``strict_format=False``; the analysis type only labels the logs.
        """
        if options is None:
            options = CallOptions(strict_format=True)
        self._log.info(f"Starting LLM analysis '{analysis_type}' with {options.model or self.settings.model}")

        result = await self.call(prompt, options)
        if is_degraded(result):
            self._log.warning(f"Analysis '{analysis_type}' degraded: {result.message}")
        return result

    async def analyze_batch(
        self, prompts: Sequence[str], analysis_type: str, options: CallOptions | None = None
    ) -> list[Any]:
        """Run independent analyses concurrently, preserving input order."""
        return list(await asyncio.gather(*(self.analyze(p, analysis_type, options) for p in prompts)))

# tests/conftest.py
"""
Shared pytest fixtures and fakes for need_miner tests.

Nothing here touches the network: transports and suggestion providers are
scripted, caches live in memory and time comes from a fixed clock.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from need_miner.config import Settings
from need_miner.discovery.models import Suggestion
from need_miner.llm.cache import MemoryCacheStore, ResponseCache
from need_miner.llm.gateway import LLMGateway
from need_miner.llm.retry import RetryPolicy
from need_miner.llm.transports import TransportKind, TransportRequest

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logging.getLogger("need_miner").setLevel(logging.DEBUG)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ScriptedTransport:
    """
    Transport that replays a script.

    Each script item is a response string, an exception instance to raise,
    or a callable ``(messages, request) -> str``. Once the script runs out
    ``default`` is used the same way.
    """

    kind = TransportKind.OPENAI_COMPATIBLE

    def __init__(self, script: list[Any] | None = None, default: Any = None):
        self.script = list(script or [])
        self.default = default
        self.calls: list[tuple[list[dict[str, str]], TransportRequest]] = []

    async def send(self, messages: list[dict[str, str]], request: TransportRequest) -> str:
        self.calls.append(([dict(m) for m in messages], request))
        item = self.script.pop(0) if self.script else self.default
        if item is None:
            raise AssertionError("transport script exhausted")
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(messages, request)
        return item


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedSuggestionProvider:
    """
    Suggestion provider backed by a mapping or a function.

    Unknown queries get ``count`` generated suggestions of the form
    ``"<query> <word>"``.
    """

    WORDS = [
        "price", "review", "for beginners", "vs alternatives", "how to use",
        "near me", "under 200", "best brands", "problems", "guide", "2025", "ideas",
    ]  # fmt: skip

    def __init__(
        self,
        responses: dict[str, list[Any] | BaseException] | None = None,
        fn: Callable[[str], list[Any]] | None = None,
        count: int = 10,
    ):
        self.responses = responses or {}
        self.fn = fn
        self.count = count
        self.queries: list[str] = []

    async def get_suggestions(self, query: str) -> list[Suggestion]:
        self.queries.append(query)
        if query in self.responses:
            response = self.responses[query]
            if isinstance(response, BaseException):
                raise response
            raw = response
        elif self.fn is not None:
            raw = self.fn(query)
        else:
            raw = [f"{query} {word}" for word in self.WORDS[: self.count]]
        return [
            item if isinstance(item, Suggestion) else Suggestion(query=str(item), position=index)
            for index, item in enumerate(raw)
        ]


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def memory_store():
    return MemoryCacheStore()


@pytest.fixture
def cache(memory_store, clock):
    return ResponseCache(memory_store, ttl=3600, clock=clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        model="gpt-4o-mini",
        api_key="test-key",
        cache_dir=tmp_path / "cache",
        request_timeout=5.0,
        max_retries=3,
    )


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_gateway(settings, cache, sleeper):
    """Factory: ``make_gateway(script, default=None, **kwargs) -> (gateway, transport)``."""

    def _make(script: list[Any] | None = None, default: Any = None, **kwargs: Any):
        transport = ScriptedTransport(script, default=default)
        kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=settings.max_retries, base_delay=1.0))
        gateway = LLMGateway(transport, settings=settings, cache=cache, sleep=sleeper, **kwargs)
        return gateway, transport

    return _make


@pytest.fixture
def provider():
    return ScriptedSuggestionProvider()

# need_miner/llm/cache.py
"""
Response Cache - content-addressed store for LLM text responses.

Identical logical requests (same messages, model, temperature and format
flag) hash to the same fingerprint, so a repeated analysis is answered from
storage instead of the provider.

Expiry is lazy: an entry older than the TTL is treated as absent when read;
there is no background sweep. Writes are last-write-wins.

Persistence is pluggable through the CacheStore protocol. Storage failures
never propagate: a failed read is a miss, a failed write is logged.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


def compute_fingerprint(
    messages: Sequence[dict[str, str]],
    model: str,
    temperature: float,
    json_requested: bool,
) -> str:
    """
    Deterministic hash of the semantically relevant request fields.

    Keys are sorted and separators fixed so dict ordering never leaks into
    the fingerprint.
    """
    payload = json.dumps(
        {
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "model": model,
            "temperature": temperature,
            "json_requested": json_requested,
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CacheEntry(BaseModel):
    """A cached response. Read-only once created."""

    model_config = ConfigDict(frozen=True)

    fingerprint: str
    response: str
    model: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_record(self) -> dict[str, Any]:
        """Serialized form handed to the store."""
        return {
            "response": self.response,
            "timestamp": self.created_at.timestamp(),
            "model": self.model,
        }

    @classmethod
    def from_record(cls, fingerprint: str, record: dict[str, Any]) -> CacheEntry:
        return cls(
            fingerprint=fingerprint,
            response=record["response"],
            model=record.get("model", ""),
            created_at=datetime.fromtimestamp(float(record["timestamp"]), tz=UTC),
        )


class CacheStats(BaseModel):
    """Counters for cache effectiveness."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    writes: int = 0
    read_errors: int = 0
    write_errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


@runtime_checkable
class CacheStore(Protocol):
    """Key/value persistence for cache records. TTL is not the store's concern."""

    async def load(self, key: str) -> dict[str, Any] | None: ...

    async def save(self, key: str, record: dict[str, Any]) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryCacheStore:
    """In-process store, used for tests and short-lived runs."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}

    async def load(self, key: str) -> dict[str, Any] | None:
        record = self.records.get(key)
        return dict(record) if record is not None else None

    async def save(self, key: str, record: dict[str, Any]) -> None:
        self.records[key] = dict(record)

    async def delete(self, key: str) -> None:
        self.records.pop(key, None)


class FileCacheStore:
    """
    One JSON file per fingerprint under ``directory``.

    File I/O runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def load(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)

        def _read() -> dict[str, Any] | None:
            if not path.exists():
                return None
            return json.loads(path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def save(self, key: str, record: dict[str, Any]) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(record, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)


class ResponseCache:
    """
    TTL-bounded response cache in front of a CacheStore.

    Examples:
        ```python
        cache = ResponseCache(FileCacheStore("output/cache"), ttl=86400)
        key = compute_fingerprint(messages, "gpt-4o-mini", 0.7, True)
        if (hit := await cache.get(key)) is None:
            await cache.put(key, response_text, "gpt-4o-mini")
        ```
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        ttl: float = 24 * 60 * 60,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.store: CacheStore = store if store is not None else MemoryCacheStore()
        self.ttl = ttl
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger or logging.getLogger(__name__)
        self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def is_expired(self, entry: CacheEntry) -> bool:
        age = (self._clock() - entry.created_at).total_seconds()
        return age > self.ttl

    async def get(self, fingerprint: str) -> str | None:
        """Return the cached response, or None when absent, expired or unreadable."""
        try:
            record = await self.store.load(fingerprint)
        except Exception as e:
            self._stats.read_errors += 1
            self._stats.misses += 1
            self._log.warning(f"Cache read failed for {fingerprint[:12]}: {e}")
            return None

        if record is None:
            self._stats.misses += 1
            return None

        try:
            entry = CacheEntry.from_record(fingerprint, record)
        except (KeyError, TypeError, ValueError) as e:
            self._stats.read_errors += 1
            self._stats.misses += 1
            self._log.warning(f"Discarding malformed cache record {fingerprint[:12]}: {e}")
            return None

        if self.is_expired(entry):
            self._stats.expired += 1
            self._stats.misses += 1
            self._log.debug(f"Cache entry {fingerprint[:12]} expired")
            return None

        self._stats.hits += 1
        return entry.response

    async def put(self, fingerprint: str, response: str, model: str) -> CacheEntry:
        """Store a response. Persistence failures are logged, not raised."""
        entry = CacheEntry(fingerprint=fingerprint, response=response, model=model, created_at=self._clock())
        try:
            await self.store.save(fingerprint, entry.to_record())
            self._stats.writes += 1
        except Exception as e:
            self._stats.write_errors += 1
            self._log.warning(f"Cache write failed for {fingerprint[:12]}: {e}")
        return entry

    async def invalidate(self, fingerprint: str) -> None:
        try:
            await self.store.delete(fingerprint)
        except Exception as e:
            self._log.warning(f"Cache delete failed for {fingerprint[:12]}: {e}")

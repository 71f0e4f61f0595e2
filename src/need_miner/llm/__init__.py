# need_miner/llm/__init__.py
"""
Resilience layer around remote text generation.

Cache, retry policy, repair parser and session context are composed by
``LLMGateway``; transports adapt each provider family to one call shape.
"""

from .cache import (
    CacheEntry,
    CacheStats,
    CacheStore,
    FileCacheStore,
    MemoryCacheStore,
    ResponseCache,
    compute_fingerprint,
)
from .gateway import (
    CallOptions,
    DegradedResult,
    GatewayStats,
    LLMGateway,
    is_degraded,
    is_structured_object,
)
from .repair import ParseFailure, ResponseFormat, ResponseRepairParser, is_parse_failure
from .retry import RetryPolicy
from .session_context import ChatMessage, MessageRole, Session, SessionContext
from .transports import (
    AlibabaCompatibleTransport,
    AnthropicCompatibleTransport,
    OpenAICompatibleTransport,
    Transport,
    TransportKind,
    TransportRequest,
    create_transport,
    infer_transport_kind,
)

__all__ = [
    "AlibabaCompatibleTransport",
    "AnthropicCompatibleTransport",
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "CallOptions",
    "ChatMessage",
    "DegradedResult",
    "FileCacheStore",
    "GatewayStats",
    "LLMGateway",
    "MemoryCacheStore",
    "MessageRole",
    "OpenAICompatibleTransport",
    "ParseFailure",
    "ResponseCache",
    "ResponseFormat",
    "ResponseRepairParser",
    "RetryPolicy",
    "Session",
    "SessionContext",
    "Transport",
    "TransportKind",
    "TransportRequest",
    "compute_fingerprint",
    "create_transport",
    "infer_transport_kind",
    "is_degraded",
    "is_parse_failure",
    "is_structured_object",
]

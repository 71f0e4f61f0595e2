# need_miner/llm/transports.py
"""
Provider transports.

Every backend family is normalized to one call shape:

    await transport.send(messages, TransportRequest(...)) -> raw text

The transport kind is chosen once, when the transport is built, instead of
being re-derived from the model name on every call. Transports never retry:
SDK-level retries are disabled and SDK exceptions are translated into the
need_miner error hierarchy so the gateway's single RetryPolicy can classify
them.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import anthropic
import openai
from pydantic import BaseModel, Field

from need_miner.config import DEFAULT_MODEL, Settings
from need_miner.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidRequestError,
    NeedMinerError,
    PermanentError,
    RateLimitedError,
    ServiceUnavailableError,
    StructuredOutputError,
    TransientError,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)

DASHSCOPE_COMPATIBLE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
QWEN_FALLBACK_MODEL = "qwen-max"
QWEN_MAX_TOKENS = 1500
JSON_INSTRUCTION = "Respond with valid JSON only. Do not wrap it in markdown or add commentary."


class TransportKind(str, Enum):
    """Backend families that share a wire format."""

    OPENAI_COMPATIBLE = "openai_compatible"
    ANTHROPIC_COMPATIBLE = "anthropic_compatible"
    ALIBABA_COMPATIBLE = "alibaba_compatible"


class TransportRequest(BaseModel):
    """Per-call generation parameters."""

    model: str = DEFAULT_MODEL
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0)
    json_requested: bool = False


@runtime_checkable
class Transport(Protocol):
    """Sends a chat message list to one backend and returns the raw completion."""

    kind: TransportKind

    async def send(self, messages: list[dict[str, str]], request: TransportRequest) -> str: ...


def infer_transport_kind(model: str) -> TransportKind:
    """Pick a transport family from a model name. Used only at configuration time."""
    name = model.lower()
    if "claude" in name:
        return TransportKind.ANTHROPIC_COMPATIBLE
    if "qwen" in name or "dashscope" in name:
        return TransportKind.ALIBABA_COMPATIBLE
    return TransportKind.OPENAI_COMPATIBLE


def _retry_after(exc: Any) -> float | None:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def translate_sdk_error(exc: Exception) -> NeedMinerError:
    """
    Map an openai/anthropic SDK exception onto the need_miner hierarchy.

    Both SDKs expose the same class names, so each check covers both.
    """
    if isinstance(exc, NeedMinerError):
        return exc

    if isinstance(exc, (openai.APITimeoutError, anthropic.APITimeoutError)):
        return TransportTimeoutError(f"Request timed out: {exc}")
    if isinstance(exc, (openai.APIConnectionError, anthropic.APIConnectionError)):
        return TransientError(f"Connection failed: {exc}")
    if isinstance(exc, (openai.RateLimitError, anthropic.RateLimitError)):
        return RateLimitedError(f"Rate limited: {exc}", retry_after=_retry_after(exc))
    if isinstance(
        exc,
        (
            openai.AuthenticationError,
            anthropic.AuthenticationError,
            openai.PermissionDeniedError,
            anthropic.PermissionDeniedError,
        ),
    ):
        return AuthenticationError(f"Authentication failed: {exc}", status_code=getattr(exc, "status_code", None))
    if isinstance(exc, (openai.APIStatusError, anthropic.APIStatusError)):
        status = exc.status_code
        if status == 429:
            return RateLimitedError(f"Rate limited: {exc}", retry_after=_retry_after(exc))
        if status >= 500:
            return ServiceUnavailableError(f"Upstream error {status}: {exc}", status_code=status)
        return InvalidRequestError(f"Request rejected with {status}: {exc}", status_code=status)

    return PermanentError(f"Unexpected provider error: {exc}")


def _with_json_instruction(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """Copy of ``messages`` with the JSON instruction appended to the system prompt."""
    copied = [dict(m) for m in messages]
    for message in copied:
        if message["role"] == "system":
            message["content"] = f"{message['content']}\n\n{JSON_INSTRUCTION}"
            return copied
    return [{"role": "system", "content": JSON_INSTRUCTION}, *copied]


class OpenAICompatibleTransport:
    """Chat completions over the OpenAI wire format."""

    kind = TransportKind.OPENAI_COMPATIBLE

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        client: Any | None = None,
    ):
        self._client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    def _prepare(self, messages: list[dict[str, str]], request: TransportRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_requested:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def send(self, messages: list[dict[str, str]], request: TransportRequest) -> str:
        kwargs = self._prepare(messages, request)
        logger.debug(f"{self.kind.value} request: model={kwargs['model']} messages={len(kwargs['messages'])}")
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise translate_sdk_error(exc) from exc

        if not response.choices:
            raise StructuredOutputError("Completion contained no choices")
        return response.choices[0].message.content or ""


class AlibabaCompatibleTransport(OpenAICompatibleTransport):
    """
    DashScope (Qwen) through its OpenAI-compatible endpoint.

    Non-Qwen model names are mapped to ``qwen-max``. JSON output is requested
    through the system prompt rather than ``response_format``.
    """

    kind = TransportKind.ALIBABA_COMPATIBLE

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        client: Any | None = None,
        max_tokens_cap: int = QWEN_MAX_TOKENS,
    ):
        super().__init__(api_key=api_key, base_url=base_url or DASHSCOPE_COMPATIBLE_URL, timeout=timeout, client=client)
        self.max_tokens_cap = max_tokens_cap

    @staticmethod
    def map_model(model: str) -> str:
        if model.lower().startswith("qwen"):
            return model
        return QWEN_FALLBACK_MODEL

    def _prepare(self, messages: list[dict[str, str]], request: TransportRequest) -> dict[str, Any]:
        if request.json_requested:
            messages = _with_json_instruction(messages)
        return {
            "model": self.map_model(request.model),
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": min(request.max_tokens, self.max_tokens_cap),
        }


class AnthropicCompatibleTransport:
    """Claude messages API; system prompts travel outside the message list."""

    kind = TransportKind.ANTHROPIC_COMPATIBLE

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        client: Any | None = None,
    ):
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def send(self, messages: list[dict[str, str]], request: TransportRequest) -> str:
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        if request.json_requested:
            system_parts.append(JSON_INSTRUCTION)
        turns = [{"role": m["role"], "content": m["content"]} for m in messages if m["role"] != "system"]

        logger.debug(f"{self.kind.value} request: model={request.model} messages={len(turns)}")
        try:
            response = await self._client.messages.create(
                model=request.model,
                system="\n\n".join(system_parts),
                messages=turns,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except anthropic.AnthropicError as exc:
            raise translate_sdk_error(exc) from exc

        return "".join(block.text for block in response.content if getattr(block, "type", None) == "text")


def create_transport(settings: Settings, kind: TransportKind | str | None = None, client: Any | None = None) -> Transport:
    """
    Build the transport for ``settings``.

    Examples:
        ```python
        transport = create_transport(Settings.from_env())
        transport.kind   # TransportKind.OPENAI_COMPATIBLE for gpt-4o-mini
        ```
    """
    if kind is None:
        kind = settings.transport or infer_transport_kind(settings.model)
    try:
        kind = TransportKind(kind)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown transport kind: {kind}", config_key="NEED_MINER_TRANSPORT") from exc

    if client is None and not settings.api_key:
        raise ConfigurationError("No API key configured for the LLM transport", config_key="LLM_API_KEY")

    common = {
        "api_key": settings.api_key,
        "base_url": settings.base_url,
        "timeout": settings.request_timeout,
        "client": client,
    }
    if kind is TransportKind.ANTHROPIC_COMPATIBLE:
        transport: Transport = AnthropicCompatibleTransport(**common)
    elif kind is TransportKind.ALIBABA_COMPATIBLE:
        transport = AlibabaCompatibleTransport(**common)
    else:
        transport = OpenAICompatibleTransport(**common)

    logger.info(f"Using {kind.value} transport for model {settings.model}")
    return transport

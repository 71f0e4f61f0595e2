# tests/test_transports.py
"""
Tests for provider transports and SDK error translation.

SDK clients are replaced by small fakes passed through ``client=``.
"""

from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest

from need_miner.config import Settings
from need_miner.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidRequestError,
    PermanentError,
    RateLimitedError,
    ServiceUnavailableError,
    StructuredOutputError,
    TransientError,
    TransportTimeoutError,
)
from need_miner.llm.transports import (
    JSON_INSTRUCTION,
    QWEN_FALLBACK_MODEL,
    AlibabaCompatibleTransport,
    AnthropicCompatibleTransport,
    OpenAICompatibleTransport,
    TransportKind,
    TransportRequest,
    create_transport,
    infer_transport_kind,
    translate_sdk_error,
)

MESSAGES = [
    {"role": "system", "content": "You are a keyword analyst."},
    {"role": "user", "content": "Score these keywords"},
]

REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


def _response(status, headers=None):
    return httpx.Response(status, request=REQUEST, headers=headers or {})


# ---------------------------------------------------------------------------
# Fake SDK clients
# ---------------------------------------------------------------------------


class FakeCompletions:
    def __init__(self, content='{"ok": true}', error=None, choices=True):
        self.content = content
        self.error = error
        self.choices = choices
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        choices = [SimpleNamespace(message=SimpleNamespace(content=self.content))] if self.choices else []
        return SimpleNamespace(choices=choices)


def fake_openai_client(**kwargs):
    completions = FakeCompletions(**kwargs)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class FakeMessages:
    def __init__(self, blocks, error=None):
        self.blocks = blocks
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.blocks)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestTransportSelection:
    @pytest.mark.parametrize(
        "model,kind",
        [
            ("gpt-4o-mini", TransportKind.OPENAI_COMPATIBLE),
            ("claude-3-5-sonnet", TransportKind.ANTHROPIC_COMPATIBLE),
            ("qwen-plus", TransportKind.ALIBABA_COMPATIBLE),
            ("dashscope/whatever", TransportKind.ALIBABA_COMPATIBLE),
            ("deepseek-chat", TransportKind.OPENAI_COMPATIBLE),
        ],
    )
    def test_infer_kind(self, model, kind):
        assert infer_transport_kind(model) is kind

    def test_create_infers_from_model(self):
        client, _ = fake_openai_client()
        transport = create_transport(Settings(model="claude-3-haiku", api_key="k"), client=client)
        assert isinstance(transport, AnthropicCompatibleTransport)

    def test_explicit_kind_overrides_model(self):
        client, _ = fake_openai_client()
        transport = create_transport(Settings(model="gpt-4o", api_key="k"), kind="alibaba_compatible", client=client)
        assert isinstance(transport, AlibabaCompatibleTransport)
        assert transport.kind is TransportKind.ALIBABA_COMPATIBLE

    def test_settings_transport_field(self):
        client, _ = fake_openai_client()
        settings = Settings(model="claude-3-haiku", transport="openai_compatible", api_key="k")
        assert isinstance(create_transport(settings, client=client), OpenAICompatibleTransport)

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError) as exc_info:
            create_transport(Settings(api_key="k"), kind="carrier_pigeon")
        assert exc_info.value.config_key == "NEED_MINER_TRANSPORT"

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            create_transport(Settings(api_key=None))
        assert exc_info.value.config_key == "LLM_API_KEY"
        assert exc_info.value.retryable is False


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class TestOpenAICompatible:
    async def test_send_returns_content(self):
        client, completions = fake_openai_client(content='{"score": 4}')
        transport = OpenAICompatibleTransport(client=client)

        text = await transport.send(MESSAGES, TransportRequest(model="gpt-4o-mini", max_tokens=100))

        assert text == '{"score": 4}'
        assert completions.kwargs["model"] == "gpt-4o-mini"
        assert completions.kwargs["max_tokens"] == 100
        assert "response_format" not in completions.kwargs

    async def test_json_mode(self):
        client, completions = fake_openai_client()
        await OpenAICompatibleTransport(client=client).send(MESSAGES, TransportRequest(json_requested=True))
        assert completions.kwargs["response_format"] == {"type": "json_object"}

    async def test_no_choices(self):
        client, _ = fake_openai_client(choices=False)
        with pytest.raises(StructuredOutputError):
            await OpenAICompatibleTransport(client=client).send(MESSAGES, TransportRequest())

    async def test_translates_sdk_errors(self):
        error = openai.RateLimitError("slow down", response=_response(429, {"retry-after": "3"}), body=None)
        client, _ = fake_openai_client(error=error)

        with pytest.raises(RateLimitedError) as exc_info:
            await OpenAICompatibleTransport(client=client).send(MESSAGES, TransportRequest())

        assert exc_info.value.retry_after == 3.0
        assert exc_info.value.__cause__ is error


class TestAlibabaCompatible:
    @pytest.mark.parametrize(
        "model,expected",
        [("qwen-plus", "qwen-plus"), ("Qwen-Max", "Qwen-Max"), ("gpt-4o", QWEN_FALLBACK_MODEL)],
    )
    def test_model_mapping(self, model, expected):
        assert AlibabaCompatibleTransport.map_model(model) == expected

    async def test_caps_tokens_and_requests_json_through_system_prompt(self):
        client, completions = fake_openai_client()
        transport = AlibabaCompatibleTransport(client=client)

        await transport.send(MESSAGES, TransportRequest(model="gpt-4o", max_tokens=4000, json_requested=True))

        kwargs = completions.kwargs
        assert kwargs["model"] == QWEN_FALLBACK_MODEL
        assert kwargs["max_tokens"] == 1500
        assert "response_format" not in kwargs
        assert kwargs["messages"][0]["content"].endswith(JSON_INSTRUCTION)
        # Caller's messages are untouched
        assert MESSAGES[0]["content"] == "You are a keyword analyst."


class TestAnthropicCompatible:
    async def test_system_prompt_travels_separately(self):
        messages_api = FakeMessages([
            SimpleNamespace(type="text", text='{"a": '),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text="1}"),
        ])
        transport = AnthropicCompatibleTransport(client=SimpleNamespace(messages=messages_api))

        text = await transport.send(MESSAGES, TransportRequest(model="claude-3-haiku", json_requested=True))

        assert text == '{"a": 1}'
        assert messages_api.kwargs["messages"] == [{"role": "user", "content": "Score these keywords"}]
        assert messages_api.kwargs["system"].startswith("You are a keyword analyst.")
        assert JSON_INSTRUCTION in messages_api.kwargs["system"]

    async def test_translates_sdk_errors(self):
        error = anthropic.InternalServerError("boom", response=_response(529), body=None)
        transport = AnthropicCompatibleTransport(client=SimpleNamespace(messages=FakeMessages([], error=error)))

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await transport.send(MESSAGES, TransportRequest())
        assert exc_info.value.retryable is True


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


class TestTranslateSdkError:
    def test_timeout(self):
        assert isinstance(translate_sdk_error(openai.APITimeoutError(request=REQUEST)), TransportTimeoutError)

    def test_connection(self):
        error = translate_sdk_error(anthropic.APIConnectionError(request=REQUEST))
        assert isinstance(error, TransientError)
        assert error.retryable

    @pytest.mark.parametrize("cls", [openai.AuthenticationError, openai.PermissionDeniedError])
    def test_authentication(self, cls):
        status = 401 if cls is openai.AuthenticationError else 403
        error = translate_sdk_error(cls("denied", response=_response(status), body=None))
        assert isinstance(error, AuthenticationError)
        assert error.status_code == status
        assert not error.retryable

    def test_other_client_errors_are_fatal(self):
        error = translate_sdk_error(openai.BadRequestError("bad", response=_response(400), body=None))
        assert isinstance(error, InvalidRequestError)
        assert not error.retryable

    def test_server_errors_are_transient(self):
        error = translate_sdk_error(openai.InternalServerError("down", response=_response(503), body=None))
        assert isinstance(error, ServiceUnavailableError)
        assert error.status_code == 503

    def test_unknown_errors_are_permanent(self):
        assert isinstance(translate_sdk_error(RuntimeError("??")), PermanentError)

    def test_passes_through_own_errors(self):
        error = RateLimitedError("x")
        assert translate_sdk_error(error) is error

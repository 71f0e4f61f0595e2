# tests/test_config.py
"""
Tests for Settings and the error hierarchy's retry classification.
"""

from pathlib import Path

import pytest

from need_miner.config import Settings
from need_miner.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NeedMinerError,
    PermanentError,
    RateLimitedError,
    ServiceUnavailableError,
    SessionNotFound,
    StructuredOutputError,
    TransientError,
    TransportTimeoutError,
)

ENV_KEYS = [
    "LLM_API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "DASHSCOPE_API_KEY",
    "LLM_BASE_URL",
    "NEED_MINER_MODEL",
    "NEED_MINER_TRANSPORT",
    "NEED_MINER_CACHE_DIR",
    "NEED_MINER_CACHE_TTL",
    "NEED_MINER_REQUEST_TIMEOUT",
    "NEED_MINER_MAX_RETRIES",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestSettings:
    def test_from_env(self, clean_env, tmp_path):
        clean_env.setenv("NEED_MINER_MODEL", "claude-3-5-haiku-latest")
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant")
        clean_env.setenv("NEED_MINER_CACHE_DIR", str(tmp_path))
        clean_env.setenv("NEED_MINER_CACHE_TTL", "60")
        clean_env.setenv("NEED_MINER_MAX_RETRIES", "5")

        settings = Settings.from_env()

        assert settings.model == "claude-3-5-haiku-latest"
        assert settings.api_key == "sk-ant"
        assert settings.cache_dir == Path(tmp_path)
        assert settings.cache_ttl == 60
        assert settings.max_retries == 5
        assert settings.base_url is None

    def test_generic_key_wins(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-openai")
        clean_env.setenv("LLM_API_KEY", "sk-generic")
        assert Settings.from_env().api_key == "sk-generic"

    def test_defaults(self):
        settings = Settings()
        assert settings.max_tokens == 2048
        assert settings.max_context_length == 16


class TestErrors:
    @pytest.mark.parametrize(
        "error",
        [
            TransportTimeoutError("slow"),
            RateLimitedError("429", retry_after=2.0),
            ServiceUnavailableError("503", status_code=503),
            StructuredOutputError("not json", raw="oops"),
        ],
    )
    def test_retryable(self, error):
        assert error.retryable
        assert isinstance(error, NeedMinerError)

    @pytest.mark.parametrize(
        "error",
        [
            AuthenticationError("bad key", status_code=401),
            ConfigurationError("no key", config_key="api_key"),
            SessionNotFound("abc"),
        ],
    )
    def test_permanent(self, error):
        assert not error.retryable
        assert isinstance(error, PermanentError)

    def test_rate_limit_details(self):
        error = RateLimitedError("slow down", retry_after=1.5)
        assert isinstance(error, TransientError)
        assert error.status_code == 429
        assert error.retry_after == 1.5

    def test_retryable_override(self):
        assert NeedMinerError("x", retryable=True).retryable
        assert not NeedMinerError("x").retryable

    def test_session_not_found_message(self):
        assert "abc" in str(SessionNotFound("abc"))

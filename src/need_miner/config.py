# need_miner/config.py
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

# Central model config: can be overridden by environment variable
DEFAULT_MODEL = os.getenv("NEED_MINER_MODEL", "gpt-4o-mini")
DEFAULT_TRANSPORT = os.getenv("NEED_MINER_TRANSPORT", "")
DEFAULT_CACHE_DIR = os.getenv("NEED_MINER_CACHE_DIR", str(Path.cwd() / "output" / "cache"))
DEFAULT_CACHE_TTL = int(os.getenv("NEED_MINER_CACHE_TTL", str(24 * 60 * 60)))
DEFAULT_REQUEST_TIMEOUT = float(os.getenv("NEED_MINER_REQUEST_TIMEOUT", "120"))
DEFAULT_MAX_RETRIES = int(os.getenv("NEED_MINER_MAX_RETRIES", "3"))
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class Settings(BaseModel):
    """Runtime settings for one need_miner run."""

    model: str = DEFAULT_MODEL
    transport: str = Field(default=DEFAULT_TRANSPORT, description="Empty means infer from model name")
    base_url: str | None = None
    api_key: str | None = None
    cache_dir: Path = Path(DEFAULT_CACHE_DIR)
    cache_ttl: int = DEFAULT_CACHE_TTL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    max_tokens: int = 2048
    max_context_length: int = 16

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the process environment (after .env is loaded)."""
        api_key = (
            os.getenv("LLM_API_KEY")
            or os.getenv("OPENAI_API_KEY")
            or os.getenv("ANTHROPIC_API_KEY")
            or os.getenv("DASHSCOPE_API_KEY")
        )
        return cls(
            model=os.getenv("NEED_MINER_MODEL", DEFAULT_MODEL),
            transport=os.getenv("NEED_MINER_TRANSPORT", DEFAULT_TRANSPORT),
            base_url=os.getenv("LLM_BASE_URL") or None,
            api_key=api_key,
            cache_dir=Path(os.getenv("NEED_MINER_CACHE_DIR", DEFAULT_CACHE_DIR)),
            cache_ttl=int(os.getenv("NEED_MINER_CACHE_TTL", str(DEFAULT_CACHE_TTL))),
            request_timeout=float(os.getenv("NEED_MINER_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))),
            max_retries=int(os.getenv("NEED_MINER_MAX_RETRIES", str(DEFAULT_MAX_RETRIES))),
        )

# need_miner/base_models.py
"""Base model with dict-style access.

LLM results reach callers either as plain dicts (parsed JSON) or as pydantic
sentinels (degraded results, parse failures). Giving the sentinels dict-style
access lets callers check both the same way: ``result.get("error")``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class DictCompatModel(BaseModel):
    """Base for models that can stand in for a parsed JSON object."""

    def __getitem__(self, key: str) -> Any:
        if key not in type(self).model_fields:
            raise KeyError(key)
        return getattr(self, key)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            return key in type(self).model_fields
        return False

    def get(self, key: str, default: Any = None) -> Any:
        if key in type(self).model_fields:
            return getattr(self, key)
        return default

    def keys(self) -> list[str]:
        return list(type(self).model_fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, dict):
            return self.model_dump() == other
        return super().__eq__(other)


# need_miner/llm/repair.py
"""
Response Repair Parser - coerce free-form completions into structured data.

Text generators are not format-guaranteed even when told to answer in JSON,
so parsing runs a chain of increasingly lenient strategies. The first one
that produces a value wins:

1. direct      - ``json.loads`` on the stripped text
2. fenced      - strip a ```json ... ``` wrapper and parse the inside
3. balanced    - every balanced ``{...}`` / ``[...]`` substring, largest first
4. repaired    - fix comments, Python literals, single quotes, unquoted keys
                 and trailing commas in the outermost candidate
5. salvaged    - collect ``"key": value`` pairs into an object
6. prose       - headings, ``Key: value`` lines or bullet lists become a
                 section-keyed object

When every strategy fails the parser returns a ``ParseFailure`` carrying the
raw text. It never raises for the JSON format.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from enum import Enum
from typing import Any

from need_miner.base_models import DictCompatModel

logger = logging.getLogger(__name__)


class ResponseFormat(str, Enum):
    """Expected shape of a completion."""

    JSON = "json"
    TEXT = "text"


class ParseFailure(DictCompatModel):
    """Sentinel returned when no strategy could extract structured data."""

    raw: str
    parse_error: bool = True


def is_parse_failure(value: Any) -> bool:
    return isinstance(value, ParseFailure)


_FENCE_RE = re.compile(r"```(?:json|javascript|js|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"^\s*//.*$|(?<=[,{\[\s])//[^\n\"]*$", re.MULTILINE)
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}
_PY_LITERAL_RE = re.compile(r"(?<![\w\"])(True|False|None)(?![\w\"])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_PAIR_RE = re.compile(
    r"\"([^\"\n]+)\"\s*:\s*(\"(?:[^\"\\]|\\.)*\"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null)"
)
_HEADING_RE = re.compile(r"^\s*#{1,6}\s+(.+?)\s*#*\s*$")
_KEY_LINE_RE = re.compile(r"^\s*(?:[-*]\s+)?\**([A-Za-z一-鿿][\w 一-鿿-]{0,60}?)\**\s*[:：]\s*(.+)$")
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+)$")

MAX_BALANCED_CANDIDATES = 32


def _try_json(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, TypeError):
        return False, None


def balanced_candidates(text: str, limit: int = MAX_BALANCED_CANDIDATES) -> list[str]:
    """
    Balanced ``{...}`` and ``[...]`` substrings, longest first, at most ``limit``.

    One pass with a stack of open positions. Quoted strings inside a bracket
    are skipped so braces in string values do not unbalance the scan; a
    mismatched closer discards every bracket still open.
    """
    pairs = {"{": "}", "[": "]"}
    stack: list[tuple[int, str]] = []
    spans: list[tuple[int, int]] = []
    in_string = False
    escaped = False

    for pos, c in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"' and stack:
            in_string = True
        elif c in pairs:
            stack.append((pos, pairs[c]))
        elif c in "}]" and stack:
            start, expected = stack.pop()
            if c == expected:
                spans.append((start, pos + 1))
            else:
                stack.clear()

    spans.sort(key=lambda span: span[1] - span[0], reverse=True)
    found: list[str] = []
    seen: set[str] = set()
    for start, end in spans:
        if len(found) >= limit:
            break
        candidate = text[start:end]
        if candidate not in seen:
            seen.add(candidate)
            found.append(candidate)
    return found


def _outermost(text: str) -> str:
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    if end <= start:
        return text[start:]
    return text[start : end + 1]


def _convert_single_quotes(text: str) -> str:
    """Turn single-quoted JSON strings into double-quoted ones, leaving apostrophes alone."""
    # next_significant[i]: first non-whitespace character at or after i
    next_significant = [""] * (len(text) + 1)
    for i in range(len(text) - 1, -1, -1):
        next_significant[i] = next_significant[i + 1] if text[i].isspace() else text[i]

    out: list[str] = []
    last_significant = ""
    in_double = False
    in_single = False
    escaped = False

    for i, c in enumerate(text):
        if escaped:
            if in_single and c == "'":
                out[-1] = c
            else:
                out.append(c)
            escaped = False
        elif c == "\\" and (in_double or in_single):
            out.append(c)
            escaped = True
        elif in_double:
            if c == '"':
                in_double = False
            out.append(c)
        elif in_single:
            if c == "'":
                following = next_significant[i + 1]
                if not following or following in ",}]:":
                    in_single = False
                    out.append('"')
                else:
                    out.append(c)
            elif c == '"':
                out.append('\\"')
            else:
                out.append(c)
        elif c == '"':
            in_double = True
            out.append(c)
        elif c == "'":
            if not last_significant or last_significant in ":,[{":
                in_single = True
                out.append('"')
            else:
                out.append(c)
        else:
            out.append(c)

        if not c.isspace():
            last_significant = out[-1][-1]

    return "".join(out)


def repair_syntax(text: str) -> str:
    """Best-effort fix of the syntax faults generators commonly produce."""
    fixed = _BLOCK_COMMENT_RE.sub("", text)
    fixed = _LINE_COMMENT_RE.sub("", fixed)
    fixed = _convert_single_quotes(fixed)
    fixed = _PY_LITERAL_RE.sub(lambda m: _PY_LITERALS[m.group(1)], fixed)
    fixed = _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', fixed)
    fixed = _TRAILING_COMMA_RE.sub(r"\1", fixed)
    return fixed


class ResponseRepairParser:
    """
    Layered parser for LLM completions.

    Examples:
        ```python
        parser = ResponseRepairParser()
        parser.parse('Sure! ```json\\n{"score": 7}\\n```')   # {"score": 7}
        parser.parse("{name: 'x', tags: ['a',],}")           # {"name": "x", "tags": ["a"]}
        parser.parse("nothing useful")                       # ParseFailure(raw=..., parse_error=True)
        ```
    """

    def __init__(self, logger: logging.Logger | None = None):
        self._log = logger or logging.getLogger(__name__)
        self._strategies: list[tuple[str, Callable[[str], tuple[bool, Any]]]] = [
            ("direct", self._parse_direct),
            ("fenced", self._parse_fenced),
            ("balanced", self._parse_balanced),
            ("repaired", self._parse_repaired),
            ("salvaged", self._parse_salvaged),
            ("prose", self._parse_prose),
        ]

    @property
    def strategy_names(self) -> list[str]:
        return [name for name, _ in self._strategies]

    def parse(self, raw: str, expected_format: ResponseFormat | str = ResponseFormat.JSON) -> Any:
        """Coerce ``raw`` into the expected format. See module docstring for the order."""
        value, _ = self.parse_with_strategy(raw, expected_format)
        return value

    def parse_with_strategy(
        self, raw: str, expected_format: ResponseFormat | str = ResponseFormat.JSON
    ) -> tuple[Any, str | None]:
        """Like ``parse`` but also returns the name of the winning strategy (None on failure)."""
        if raw is None:
            raw = ""
        if not isinstance(raw, str):
            raw = str(raw)

        if ResponseFormat(expected_format) == ResponseFormat.TEXT:
            return raw.strip(), "text"

        text = raw.strip()
        if not text:
            self._log.debug("Empty completion, nothing to parse")
            return ParseFailure(raw=raw), None

        for name, strategy in self._strategies:
            try:
                ok, value = strategy(text)
            except (ValueError, TypeError, RecursionError) as e:
                self._log.debug(f"Repair strategy '{name}' raised: {e}")
                continue
            if ok:
                if name != "direct":
                    self._log.debug(f"Parsed completion with '{name}' strategy")
                return value, name

        preview = text[:150] + ("..." if len(text) > 150 else "")
        self._log.warning(f"All parse strategies failed; preview: {preview!r}")
        return ParseFailure(raw=raw), None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _parse_direct(self, text: str) -> tuple[bool, Any]:
        return _try_json(text)

    def _parse_fenced(self, text: str) -> tuple[bool, Any]:
        for block in _FENCE_RE.findall(text):
            ok, value = _try_json(block.strip())
            if ok:
                return True, value
        return False, None

    def _parse_balanced(self, text: str) -> tuple[bool, Any]:
        for candidate in balanced_candidates(text):
            ok, value = _try_json(candidate)
            if ok:
                return True, value
        return False, None

    def _parse_repaired(self, text: str) -> tuple[bool, Any]:
        if "{" not in text and "[" not in text:
            return False, None
        return _try_json(repair_syntax(_outermost(text)))

    def _parse_salvaged(self, text: str) -> tuple[bool, Any]:
        salvaged: dict[str, Any] = {}
        for key, raw_value in _PAIR_RE.findall(text):
            ok, value = _try_json(raw_value)
            if ok:
                salvaged[key] = value
        if not salvaged:
            return False, None
        return True, salvaged

    def _parse_prose(self, text: str) -> tuple[bool, Any]:
        lines = text.splitlines()

        # Headings
        sections: dict[str, str] = {}
        current: str | None = None
        for line in lines:
            heading = _HEADING_RE.match(line)
            if heading:
                current = heading.group(1).strip()
                sections[current] = ""
            elif current is not None and line.strip():
                sections[current] = (sections[current] + "\n" + line.strip()).strip()
        if sections:
            return True, {"type": "markdown", "sections": sections, "raw": text}

        # Key: value lines
        pairs: dict[str, str] = {}
        for line in lines:
            match = _KEY_LINE_RE.match(line)
            if match:
                pairs[match.group(1).strip()] = match.group(2).strip()
        if len(pairs) >= 2:
            return True, {"type": "key_value", "sections": pairs, "raw": text}

        # Bullet lists
        items = [m.group(1).strip() for m in (_BULLET_RE.match(line) for line in lines) if m]
        if len(items) >= 2:
            return True, {"type": "list", "sections": {"items": items}, "raw": text}

        return False, None

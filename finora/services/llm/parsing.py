"""
Tolerant JSON parsing for LLM output.

Models wrap JSON in Markdown fences, surround it with prose, leave trailing
commas, forget to quote keys or use single quotes. The helpers here recover what
they can and report the outcome as a tagged result instead of raising:

    result = repair_and_parse(text)
    if isinstance(result, ParseSuccess):
        use(result.value)
    else:
        degrade(result.raw)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

_OPENING_FENCE_RE = re.compile(r"\A\s*```(?:json|JSON)?[ \t]*\n?")
_CLOSING_FENCE_RE = re.compile(r"\n?[ \t]*```\s*\Z")


@dataclass(frozen=True)
class ParseSuccess:
    value: dict[str, Any]


@dataclass(frozen=True)
class ParseFailure:
    error: str
    raw: str


ParseResult = Union[ParseSuccess, ParseFailure]


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence.

    Fences elsewhere (e.g. a code sample inside a JSON string) are kept.
    """
    return _CLOSING_FENCE_RE.sub("", _OPENING_FENCE_RE.sub("", text, count=1), count=1)


def _scan_string(text: str, start: int, quote: str) -> int:
    """Index just past the string literal opening at ``start`` (or len(text))."""
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(text)


def extract_json_block(text: str) -> str | None:
    """Return the first top-level ``{...}`` block in ``text``.

    Braces inside double-quoted strings are ignored. When the block never
    closes, everything from the first ``{`` to the last ``}`` is returned.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch == '"':
            i = _scan_string(text, i, '"')
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
        i += 1

    end = text.rfind("}")
    if end > start:
        return text[start : end + 1]
    return None


def repair_json(text: str) -> str:
    """Fix common near-miss JSON outside of double-quoted strings.

    - trailing commas before ``}`` or ``]`` are dropped
    - bare or single-quoted keys are double-quoted
    - single-quoted string values become double-quoted
    """
    out: list[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]

        if ch == '"':
            end = _scan_string(text, i, '"')
            out.append(text[i:end])
            i = end
            continue

        if ch == "'":
            end = _scan_string(text, i, "'")
            closed = end <= n and end - 1 > i and text[end - 1] == "'"
            inner = text[i + 1 : end - 1] if closed else text[i + 1 : end]
            out.append(json.dumps(inner.replace("\\'", "'")))
            i = end
            continue

        if ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
            out.append(ch)
            i += 1
            continue

        if ch.isalpha() or ch == "_":
            j = i
            while j < n and (text[j].isalnum() or text[j] == "_"):
                j += 1
            word = text[i:j]
            k = j
            while k < n and text[k].isspace():
                k += 1
            out.append(f'"{word}"' if k < n and text[k] == ":" else word)
            i = j
            continue

        out.append(ch)
        i += 1
    return "".join(out)


def _as_object(value: Any, raw: str) -> ParseResult:
    if isinstance(value, dict):
        return ParseSuccess(value)
    return ParseFailure(error=f"expected a JSON object, got {type(value).__name__}", raw=raw)


def parse_fenced_json(text: str) -> ParseResult:
    """Strip fences, trim, and parse directly. No repair is attempted."""
    cleaned = strip_code_fences(text).strip()
    try:
        return _as_object(json.loads(cleaned), text)
    except json.JSONDecodeError as e:
        return ParseFailure(error=str(e), raw=text)


def repair_and_parse(text: str) -> ParseResult:
    """Strip fences, extract the first object, repair it if needed, and parse."""
    cleaned = strip_code_fences(text).strip()
    block = extract_json_block(cleaned)
    if block is None:
        return ParseFailure(error="no JSON object found", raw=text)

    try:
        return _as_object(json.loads(block), text)
    except json.JSONDecodeError:
        pass

    try:
        return _as_object(json.loads(repair_json(block)), text)
    except json.JSONDecodeError as e:
        return ParseFailure(error=str(e), raw=text)

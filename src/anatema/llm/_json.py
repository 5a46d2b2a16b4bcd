from __future__ import annotations

import json
import re
from typing import Any, Optional

from .errors import ParseError

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*")
_BLANK_LINE_RE = re.compile(r"^\s*[\r\n]", re.MULTILINE)


def parse_json(text: str) -> Any:
    """Parse ``text`` into a dict or list.

    Scalars (numbers, strings, null) are rejected: a model response is only
    useful to us as a structured value.
    """

    try:
        value = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Failed to parse JSON: {e}") from e
    if not isinstance(value, (dict, list)):
        raise ParseError(f"Expected a JSON object, got {type(value).__name__}")
    return value


def extract_balanced_object(text: str) -> Optional[str]:
    """Return the substring from the first ``{`` to its matching ``}``.

    Braces inside string literals are ignored. Returns None when there is no
    opening brace or the object is never closed (truncated output).
    """

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def strip_markdown_fences(text: str) -> str:
    """Remove ``` fences (with or without a language tag) and blank lines."""

    cleaned = _FENCE_RE.sub("", text)
    cleaned = _BLANK_LINE_RE.sub("", cleaned)
    return cleaned.strip()


def extract_line_window(text: str) -> Optional[str]:
    """Join the lines from the first one starting with ``{`` up to the first
    one (possibly the same) ending with ``}``."""

    collected: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not collected and not stripped.startswith("{"):
            continue
        collected.append(line)
        if stripped.endswith("}"):
            return "\n".join(collected)
    return None

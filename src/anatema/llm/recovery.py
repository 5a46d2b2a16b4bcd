"""Recover a structured object from a free-text model completion.

Models asked for "JSON only" still wrap it in prose, fence it in markdown or
get cut off. :func:`parse_response` tries a fixed sequence of cheap strategies,
each aimed at one of those failure modes, and accepts the first candidate that
parses *and* passes the template's validation rules.

The parser never raises: it always returns a :class:`RecoveryResult`.
"""

from __future__ import annotations

from typing import Callable, Optional

from anatema import logger as logger_mod

from ._json import (
    extract_balanced_object,
    extract_line_window,
    parse_json,
    strip_markdown_fences,
)
from .errors import ParseError
from .templates import PromptTemplate
from .types import RecoveryResult

log = logger_mod.get_logger()

PREVIEW_CHARS = 200

Strategy = Callable[[str], Optional[str]]

FENCE = "```"


def _unfenced_balanced(text: str) -> Optional[str]:
    # An object opened inside a fence belongs to the fence strategies below.
    # Backticks after the first brace may sit inside a string value.
    fence_at = text.find(FENCE)
    brace_at = text.find("{")
    if fence_at != -1 and (brace_at == -1 or fence_at < brace_at):
        return None
    return extract_balanced_object(text)


# Order matters: first match wins.
STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("direct", lambda text: text),
    ("balanced", _unfenced_balanced),
    ("fenced", strip_markdown_fences),
    ("fenced_balanced", lambda text: extract_balanced_object(strip_markdown_fences(text))),
    ("line_window", extract_line_window),
)


def parse_response(response: str, template: PromptTemplate) -> RecoveryResult:
    response = response or ""

    for name, strategy in STRATEGIES:
        candidate = strategy(response)
        if candidate is None:
            log.debug(f"Strategy {name}: no candidate")
            continue

        try:
            data = parse_json(candidate)
        except ParseError as e:
            log.debug(f"Strategy {name}: {e}")
            continue

        if not template.accepts(data):
            log.debug(f"Strategy {name}: parsed but failed validation")
            continue

        log.debug(f"✅ Strategy {name} recovered a valid response")
        return RecoveryResult(success=True, data=data, strategy=name)

    preview = response[:PREVIEW_CHARS]
    log.warning(
        f"⚠️ Unable to recover a structured response "
        f"(length={len(response)}, expected: {template.expected_format})"
    )
    return RecoveryResult(
        success=False,
        error=(
            f"Unable to parse the AI response: all {len(STRATEGIES)} recovery "
            f'strategies exhausted. Preview: "{preview}"'
        ),
    )

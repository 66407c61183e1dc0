"""Pull JSON out of free-text LLM completions.

Models wrap JSON in markdown fences, prefix it with chatter or return it bare.
Each strategy takes the raw text and returns the decoded value or ``None``;
``parse_json`` tries a chain of them in order and the first success wins.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Optional, Sequence

from .errors import ParseError

logger = logging.getLogger(__name__)

Strategy = Callable[[str], Optional[Any]]

_FENCED_JSON = re.compile(r"```json\s*\n([\s\S]*?)\n\s*```")
_FENCED_PLAIN = re.compile(r"```\s*\n([\s\S]*?)\n\s*```")
_BRACE_SPAN = re.compile(r"\{[\s\S]*\}")
_BRACKET_SPAN = re.compile(r"\[[\s\S]*\]")


def _loads(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None


def _from_pattern(pattern: re.Pattern[str], text: str, group: int) -> Optional[Any]:
    match = pattern.search(text)
    if not match:
        return None
    return _loads(match.group(group))


def fenced_json(text: str) -> Optional[Any]:
    return _from_pattern(_FENCED_JSON, text, 1)


def fenced_plain(text: str) -> Optional[Any]:
    return _from_pattern(_FENCED_PLAIN, text, 1)


def brace_span(text: str) -> Optional[Any]:
    """First ``{`` to last ``}``; does not balance nested braces."""

    return _from_pattern(_BRACE_SPAN, text, 0)


def bracket_span(text: str) -> Optional[Any]:
    return _from_pattern(_BRACKET_SPAN, text, 0)


OBJECT_STRATEGIES: tuple[Strategy, ...] = (fenced_json, fenced_plain, brace_span)
AD_COPY_STRATEGIES: tuple[Strategy, ...] = (brace_span,)
ARRAY_STRATEGIES: tuple[Strategy, ...] = (bracket_span,)


def parse_json(text: str, strategies: Sequence[Strategy] = OBJECT_STRATEGIES, expect: type = dict) -> Any:
    """Run ``strategies`` in order and return the first result of type ``expect``."""

    for strategy in strategies:
        value = strategy(text or "")
        if isinstance(value, expect):
            logger.debug("Parsed LLM response with %s", strategy.__name__)
            return value
    snippet = (text or "")[:200]
    raise ParseError(f"Failed to parse LLM response as JSON: {snippet!r}")

"""
Sanitization of model output.

Provider replies are untrusted. Their strings end up in preview text and in
the workspace itself, so every string is scrubbed of executable markup
before anything renders or applies it. Only string content changes: dict
and list shape, None and non-string scalars pass through as they are.
"""

from __future__ import annotations

import re
from typing import Any

from loguru import logger

from planwright.models import AIResult

_PATTERNS = (
    re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<iframe\b[^>]*>.*?</iframe\s*>", re.IGNORECASE | re.DOTALL),
    # unterminated or stray tags left after the paired removal
    re.compile(r"</?(?:script|iframe)\b[^>]*>?", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
)


def sanitize_string(value: str) -> str:
    # A removal can splice the surrounding text into a new tag, so repeat
    # until nothing matches.
    while True:
        scrubbed = value
        for pattern in _PATTERNS:
            scrubbed = pattern.sub("", scrubbed)
        if scrubbed == value:
            return scrubbed
        value = scrubbed


def sanitize(value: Any) -> Any:
    """Recursively scrub every string inside ``value``."""
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        return {key: sanitize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    return value


def sanitize_result(result: AIResult) -> AIResult:
    sanitized = AIResult(
        mode=result.mode,
        changes=[sanitize(change) for change in result.changes],
        summary=sanitize_string(result.summary),
        reasoning=sanitize_string(result.reasoning),
        insights=[sanitize(insight) for insight in result.insights],
    )
    if sanitized != result:
        logger.warning("[SANITIZE] Stripped markup from provider output")
    return sanitized

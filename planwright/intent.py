"""
Intent classification.

Decides whether an utterance asks a question about the workspace
("analysis") or asks for the workspace to change ("action"). Pure pattern
matching, no model call.
"""

from __future__ import annotations

import re

from planwright.models import RequestMode

_ANALYSIS_PATTERNS = (
    re.compile(
        r"\b(how many|how much|count|total|list|show|what|which|when|where|tell me"
        r"|analy[sz]e|summary|statistics|stats|pattern|insight)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(questions?|answer|information|data|report)\b", re.IGNORECASE),
)

_ACTION_PATTERNS = (
    re.compile(
        r"\b(move|create|add|delete|update|change|modify|set|remove|reorder|schedule)\b",
        re.IGNORECASE,
    ),
)


def classify(utterance: str) -> RequestMode:
    """
    Tag an utterance as ``"analysis"`` or ``"action"``.

    Informational keywords win over action keywords, so "show me what to
    move" is analysis. Anything unrecognised is treated as an action: the
    user then gets a preview instead of nothing.
    """
    for pattern in _ANALYSIS_PATTERNS:
        if pattern.search(utterance):
            return "analysis"

    for pattern in _ACTION_PATTERNS:
        if pattern.search(utterance):
            return "action"

    return "action"

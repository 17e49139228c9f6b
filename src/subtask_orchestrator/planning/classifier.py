"""Deterministic keyword-scoring classifier for task descriptions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .patterns import DEFAULT_PATTERN, PatternRegistry, WorkflowPattern, WorkflowStep


_AUTHORING_WORDS = ("write", "generate", "create")
_CODE_WORDS = ("code", "script", "function")
_DOC_WORDS = ("doc", "guide")


@dataclass(frozen=True)
class Classification:
    pattern: str
    score: int
    steps: tuple[WorkflowStep, ...]


def score_pattern(pattern: WorkflowPattern, text: str) -> int:
    return sum(1 for keyword in pattern.keywords if keyword in text)


def _fallback_pattern(text: str) -> str:
    if any(word in text for word in _AUTHORING_WORDS):
        if any(word in text for word in _CODE_WORDS):
            return "development"
        if any(word in text for word in _DOC_WORDS):
            return "documentation"
    return DEFAULT_PATTERN


def classify(title: str, description: str = "", registry: Optional[PatternRegistry] = None) -> Classification:
    """Pick the workflow pattern whose keywords best match the task text.

    The first pattern in registry order to reach the highest score wins. A zero
    score falls back to a write/generate/create heuristic and then to
    ``development``.
    """
    registry = registry or PatternRegistry()
    text = f"{title or ''} {description or ''}".lower()

    best: Optional[WorkflowPattern] = None
    best_score = 0
    for pattern in registry.patterns():
        score = score_pattern(pattern, text)
        if score > best_score:
            best, best_score = pattern, score

    if best is None:
        best = registry.find(_fallback_pattern(text)) or registry.patterns()[0]

    return Classification(pattern=best.name, score=best_score, steps=best.steps)

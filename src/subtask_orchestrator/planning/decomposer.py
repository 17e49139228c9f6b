from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..constants import EXPLICIT_PATTERN
from .classifier import classify
from .patterns import PatternRegistry


_BULLET_PREFIXES = ("- ", "* ")


@dataclass
class RawSubtask:
    """Sub-task produced by decomposition, before ids and dependencies are assigned."""
    index: int
    title: str
    description: str = ""
    workflow_chain: Optional[str] = None
    workflow_step: Optional[str] = None
    workflow_keywords: list[str] = field(default_factory=list)


@dataclass
class Decomposition:
    pattern: str
    subtasks: list[RawSubtask]


def parse_bullets(description: str) -> list[RawSubtask]:
    """Split a description into explicit sub-tasks, one per ``- `` or ``* `` line.

    Non-bullet lines after a bullet are folded into that bullet's description.
    Text before the first bullet is ignored.
    """
    items: list[RawSubtask] = []
    current: Optional[RawSubtask] = None
    detail_lines: list[str] = []

    def _flush() -> None:
        if current is not None:
            current.description = " ".join(detail_lines)
            items.append(current)

    for raw_line in (description or "").splitlines():
        line = raw_line.strip()
        if line.startswith(_BULLET_PREFIXES):
            _flush()
            current = RawSubtask(index=len(items) + 1, title=line[2:].strip())
            detail_lines = []
        elif line and current is not None:
            detail_lines.append(line)
    _flush()
    return items


def decompose(title: str, description: str = "", registry: Optional[PatternRegistry] = None) -> Decomposition:
    """Turn a task into raw sub-tasks.

    Explicit bullets win; otherwise the classified pattern's steps are
    instantiated against the task title. The result is never empty.
    """
    explicit = parse_bullets(description)
    if explicit:
        return Decomposition(pattern=EXPLICIT_PATTERN, subtasks=explicit)

    classification = classify(title, description, registry)
    subtasks = [
        RawSubtask(
            index=position,
            title=f"{step.name} {title}".strip(),
            description=step.description,
            workflow_chain=classification.pattern,
            workflow_step=step.chain_key,
            workflow_keywords=list(step.carried_keywords()),
        )
        for position, step in enumerate(classification.steps, start=1)
    ]
    if not subtasks:
        subtasks = [RawSubtask(index=1, title=title or "Task", description=description)]
    return Decomposition(pattern=classification.pattern, subtasks=subtasks)

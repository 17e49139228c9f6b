"""Wire sequential dependencies between decomposed sub-tasks.

Each sub-task is placed on a workflow chain (the ordered, lower-cased step names
of a pattern) using only the keywords it carries. A sub-task at chain position
``p > 0`` depends on the nearest earlier sub-task at position ``p - 1`` of the
same chain. Links only point backwards, so the result is always acyclic with at
most one dependency per sub-task.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from ..constants import EXECUTION_PARALLEL, EXECUTION_SEQUENTIAL, WORKFLOW_TYPE_OTHER
from ..domain.models import Subtask
from .decomposer import RawSubtask
from .patterns import PatternRegistry


@dataclass(frozen=True)
class ChainPosition:
    chain: str
    step: str
    position: int


def _ordered_chains(registry: PatternRegistry, preferred: Optional[str]) -> list[tuple[str, list[str]]]:
    chains = registry.chains()
    if preferred:
        chains.sort(key=lambda item: item[0] != preferred)
    return chains


def locate(keywords: Iterable[str], registry: PatternRegistry, preferred_chain: Optional[str] = None) -> Optional[ChainPosition]:
    """Return the chain position for a keyword set, or None for ``other``."""
    carried = {kw.strip().lower() for kw in keywords if kw and kw.strip()}
    if not carried:
        return None
    for chain_name, steps in _ordered_chains(registry, preferred_chain):
        for position, step in enumerate(steps):
            if step in carried:
                return ChainPosition(chain=chain_name, step=step, position=position)
    return None


def link(raw_subtasks: list[RawSubtask], registry: Optional[PatternRegistry] = None) -> list[Subtask]:
    registry = registry or PatternRegistry()
    linked: list[Subtask] = []
    positions: list[Optional[ChainPosition]] = []

    for raw in sorted(raw_subtasks, key=lambda item: item.index):
        found = locate(raw.workflow_keywords, registry, raw.workflow_chain)
        subtask = Subtask(
            index=raw.index,
            title=raw.title,
            description=raw.description,
            workflow_keywords=list(raw.workflow_keywords),
        )
        if found is None:
            subtask.execution_mode = EXECUTION_PARALLEL
            subtask.workflow_chain = raw.workflow_chain or WORKFLOW_TYPE_OTHER
            subtask.workflow_step = raw.workflow_step
        else:
            subtask.execution_mode = EXECUTION_SEQUENTIAL
            subtask.workflow_chain = found.chain
            subtask.workflow_step = found.step
            if found.position > 0:
                for earlier_idx in range(len(linked) - 1, -1, -1):
                    earlier = positions[earlier_idx]
                    if earlier is not None and earlier.chain == found.chain and earlier.position == found.position - 1:
                        subtask.depends_on = [linked[earlier_idx].id]
                        break
        linked.append(subtask)
        positions.append(found)

    return linked

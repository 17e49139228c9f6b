"""State machine and readiness rules for plans and their sub-tasks.

Everything here is pure: functions inspect or mutate in-memory ``Plan`` and
``Subtask`` objects and never touch storage.
"""

from __future__ import annotations

from typing import Any, Optional

from ..constants import (
    PLAN_STATUS_COMPLETED,
    PLAN_STATUS_PARTIAL,
    SUBTASK_ASSIGNED,
    SUBTASK_CANCELLED,
    SUBTASK_COMPLETED,
    SUBTASK_FAILED,
    SUBTASK_IN_PROGRESS,
    SUBTASK_PENDING,
)
from ..domain.models import Plan, Subtask, now_iso
from ..errors import InvalidStateError


SUBTASK_TRANSITIONS: dict[str, set[str]] = {
    SUBTASK_PENDING: {SUBTASK_ASSIGNED, SUBTASK_CANCELLED},
    SUBTASK_ASSIGNED: {SUBTASK_IN_PROGRESS, SUBTASK_FAILED, SUBTASK_CANCELLED},
    SUBTASK_IN_PROGRESS: {SUBTASK_COMPLETED, SUBTASK_FAILED, SUBTASK_CANCELLED},
    SUBTASK_COMPLETED: set(),
    SUBTASK_FAILED: set(),
    SUBTASK_CANCELLED: set(),
}

READY_STATUSES = {SUBTASK_PENDING, SUBTASK_ASSIGNED}


def transition_subtask(subtask: Subtask, target: str) -> Subtask:
    if target not in SUBTASK_TRANSITIONS.get(subtask.status, set()):
        raise InvalidStateError(f"Sub-task {subtask.id} cannot move from {subtask.status} to {target}")
    subtask.status = target
    if target == SUBTASK_IN_PROGRESS:
        subtask.started_at = now_iso()
    elif target in {SUBTASK_COMPLETED, SUBTASK_FAILED, SUBTASK_CANCELLED}:
        subtask.completed_at = now_iso()
    return subtask


def dependencies_satisfied(plan: Plan, subtask: Subtask) -> bool:
    for dep_id in subtask.depends_on:
        dep = plan.subtask(dep_id)
        if dep is None or dep.status != SUBTASK_COMPLETED:
            return False
    return True


def is_ready(plan: Plan, subtask: Subtask) -> bool:
    return subtask.status in READY_STATUSES and dependencies_satisfied(plan, subtask)


def ready_subtasks(plan: Plan) -> list[Subtask]:
    return [subtask for subtask in sorted(plan.subtasks, key=lambda s: s.index) if is_ready(plan, subtask)]


def dependency_outputs(plan: Plan, subtask: Subtask) -> list[dict[str, Any]]:
    outputs: list[dict[str, Any]] = []
    for dep_id in subtask.depends_on:
        dep = plan.subtask(dep_id)
        if dep is not None and dep.status == SUBTASK_COMPLETED:
            outputs.append({"subtask_id": dep.id, "title": dep.title, "output": dep.output or dep.result or ""})
    return outputs


def completion_outcome(plan: Plan) -> Optional[str]:
    """Return the terminal status a plan should take now, or None if it is still open."""
    if not plan.subtasks:
        return None
    if all(subtask.status == SUBTASK_COMPLETED for subtask in plan.subtasks):
        return PLAN_STATUS_COMPLETED
    if any(subtask.status == SUBTASK_FAILED for subtask in plan.subtasks):
        return PLAN_STATUS_PARTIAL
    return None


def completion_result(plan: Plan) -> dict[str, Any]:
    return {
        "summary": f"All {len(plan.subtasks)} subtasks completed",
        "subtasks": [{"title": subtask.title, "result": subtask.result} for subtask in plan.subtasks],
    }


def progress(plan: Plan) -> dict[str, Any]:
    counts = {status: 0 for status in SUBTASK_TRANSITIONS}
    for subtask in plan.subtasks:
        counts[subtask.status] = counts.get(subtask.status, 0) + 1
    total = len(plan.subtasks)
    completed = counts[SUBTASK_COMPLETED]
    return {
        "total": total,
        "completed": completed,
        "in_progress": counts[SUBTASK_IN_PROGRESS],
        "pending": counts[SUBTASK_PENDING] + counts[SUBTASK_ASSIGNED],
        "failed": counts[SUBTASK_FAILED],
        "cancelled": counts[SUBTASK_CANCELLED],
        "percent": round(completed * 100 / total) if total else 0,
    }

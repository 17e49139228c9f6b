from __future__ import annotations

from typing import Any, Sequence

from ..constants import TASK_COMPLETE_PREFIX
from ..domain.models import Subtask


def render_task_brief(subtask: Subtask, dependency_outputs: Sequence[dict[str, Any]] = ()) -> str:
    """Build the instructions handed to the executor for one sub-task.

    Completed dependency outputs are appended as a handoff block so the agent
    can continue from the previous step's work.
    """
    brief = (
        "**Sub-Agent Task**\n\n"
        f"**Objective:** {subtask.title}\n\n"
        f"**Details:** {subtask.description}\n\n"
        "**Instructions:**\n"
        "1. Complete this task independently\n"
        "2. Report back with status and results\n"
        "3. Use available tools to accomplish the goal\n"
        "4. If blocked, report the blocker clearly\n\n"
        f'When complete, report: "{TASK_COMPLETE_PREFIX} [summary of what was done]"'
    )
    if dependency_outputs:
        brief += "\n\n**Previous Task Outputs:**\n\n"
        for dep in dependency_outputs:
            brief += f"## {dep.get('title', '')}\n{dep.get('output', '')}\n\n"
    return brief

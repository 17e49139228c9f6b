"""Review notifications sent when every sub-task of a plan has completed.

A notifier receives one rendered message per completed plan. The log notifier
is the default; the command notifier runs an external program (for example a
chat or cron wake-up hook) with the message substituted into its argv.
"""

from __future__ import annotations

import subprocess
from typing import Any, Optional, Protocol, Sequence

from loguru import logger

from .domain.models import Plan


MESSAGE_PLACEHOLDER = "{message}"


class ReviewNotifier(Protocol):
    def notify(self, summary: str) -> None:
        ...


def build_review_message(plan: Plan) -> str:
    """Render the review request for a completed plan.

    Args:
        plan: The completed plan.

    Returns:
        Markdown text listing every sub-task with its final status.
    """
    lines = [f"{idx}. {subtask.title}: {subtask.status}" for idx, subtask in enumerate(plan.subtasks, start=1)]
    return (
        "**Sub-tasks Complete - Review Required**\n\n"
        f"**Task:** {plan.title}\n"
        f"**Task ID:** {plan.parent_task_id}\n\n"
        f"All {len(plan.subtasks)} sub-agents have completed their work.\n\n"
        "**Sub-task Results:**\n"
        + "\n".join(lines)
        + "\n\n**Action Required:**\n"
        "Please review the results and move the task to done if satisfied, "
        "or back to in-progress if changes are needed."
    )


class LogReviewNotifier:
    """Write review requests to the log."""

    def notify(self, summary: str) -> None:
        logger.info("Review requested:\n{}", summary)


class CommandReviewNotifier:
    """Run an external command for each review request without waiting for it."""

    def __init__(self, command: Sequence[str], enabled: bool = True):
        """Initialize the command notifier.

        Args:
            command: Argument vector; every ``{message}`` is replaced by the summary.
                If no element contains the placeholder the summary is appended.
            enabled: Whether notifications are sent at all.
        """
        self.command = list(command)
        self.enabled = enabled and bool(self.command)

    def build_argv(self, summary: str) -> list[str]:
        if not any(MESSAGE_PLACEHOLDER in part for part in self.command):
            return [*self.command, summary]
        return [part.replace(MESSAGE_PLACEHOLDER, summary) for part in self.command]

    def notify(self, summary: str) -> None:
        if not self.enabled:
            return
        argv = self.build_argv(summary)
        try:
            subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            logger.warning("Review notification command failed to start ({}): {}", argv[0], exc)
            return
        logger.debug("Review notification dispatched via {}", argv[0])


def build_notifier(config: dict[str, Any]) -> Optional[ReviewNotifier]:
    """Pick a notifier from the ``notifications`` config block.

    Args:
        config: Result of ``get_notification_config``.

    Returns:
        ``None`` when disabled, a command notifier when a command is configured,
        otherwise the log notifier.
    """
    if not config.get("enabled", True):
        return None
    command = list(config.get("command") or [])
    if command:
        return CommandReviewNotifier(command)
    return LogReviewNotifier()

"""Tests for review notifications."""

from __future__ import annotations

import subprocess
from unittest import mock

from subtask_orchestrator.domain.models import Plan, Subtask
from subtask_orchestrator.notifications import (
    CommandReviewNotifier,
    LogReviewNotifier,
    build_notifier,
    build_review_message,
)


def test_review_message_lists_subtasks() -> None:
    plan = Plan(
        parent_task_id="task-1",
        title="Fix login bug",
        subtasks=[
            Subtask(index=1, title="Reproduce", status="completed"),
            Subtask(index=2, title="Verify", status="completed"),
        ],
    )

    message = build_review_message(plan)

    assert "**Task:** Fix login bug" in message
    assert "**Task ID:** task-1" in message
    assert "All 2 sub-agents have completed their work." in message
    assert "1. Reproduce: completed\n2. Verify: completed" in message


def test_command_notifier_substitutes_message() -> None:
    notifier = CommandReviewNotifier(["wake", "{message}", "--mode", "now"])
    assert notifier.build_argv("hello") == ["wake", "hello", "--mode", "now"]

    appended = CommandReviewNotifier(["notify-send"])
    assert appended.build_argv("hello") == ["notify-send", "hello"]


def test_command_notifier_runs_detached() -> None:
    notifier = CommandReviewNotifier(["wake", "{message}"])
    with mock.patch("subtask_orchestrator.notifications.subprocess.Popen") as popen:
        notifier.notify("ready")

    popen.assert_called_once()
    assert popen.call_args.args[0] == ["wake", "ready"]
    assert popen.call_args.kwargs["stdout"] is subprocess.DEVNULL


def test_command_notifier_swallows_launch_errors() -> None:
    notifier = CommandReviewNotifier(["missing-binary", "{message}"])
    with mock.patch("subtask_orchestrator.notifications.subprocess.Popen", side_effect=FileNotFoundError("nope")):
        notifier.notify("ready")


def test_disabled_command_notifier_does_nothing() -> None:
    notifier = CommandReviewNotifier(["wake"], enabled=False)
    with mock.patch("subtask_orchestrator.notifications.subprocess.Popen") as popen:
        notifier.notify("ready")
    popen.assert_not_called()


def test_build_notifier_from_config() -> None:
    assert build_notifier({"enabled": False, "command": ["wake"]}) is None
    assert isinstance(build_notifier({"enabled": True, "command": []}), LogReviewNotifier)
    notifier = build_notifier({"enabled": True, "command": ["wake", "{message}"]})
    assert isinstance(notifier, CommandReviewNotifier)
    assert notifier.command == ["wake", "{message}"]

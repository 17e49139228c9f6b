from __future__ import annotations

import sys
from pathlib import Path

import pytest

from subtask_orchestrator.domain.models import SpawnQueueEntry
from subtask_orchestrator.orchestrator import create_engine
from subtask_orchestrator.workers import CommandExecutor, ExecutionOutcome, drain_loop, drain_once, parse_task_complete


class ScriptedExecutor:
    def __init__(self, outcomes: dict[str, ExecutionOutcome] | None = None) -> None:
        self.outcomes = outcomes or {}
        self.seen: list[SpawnQueueEntry] = []

    def run(self, entry: SpawnQueueEntry) -> ExecutionOutcome:
        self.seen.append(entry)
        for prefix, outcome in self.outcomes.items():
            if entry.task.find(f"**Objective:** {prefix}") >= 0:
                return outcome
        return ExecutionOutcome(ok=True, summary=f"finished {entry.subtask_id}", output="notes")


class SilentNotifier:
    def notify(self, summary: str) -> None:
        pass


def test_parse_task_complete_takes_last_marker() -> None:
    text = "working\nTASK_COMPLETE: first\nmore\n  TASK_COMPLETE:  final answer  \n"
    assert parse_task_complete(text) == "final answer"
    assert parse_task_complete("no marker") is None


def test_drain_once_processes_current_queue(tmp_path: Path) -> None:
    engine = create_engine(tmp_path, notifier=SilentNotifier())
    plan = engine.plan_task("task-1", "Fix login bug")
    engine.execute_next_ready(plan.id)
    executor = ScriptedExecutor()

    report = drain_once(engine, executor, auto_advance=False)

    assert report.processed == 1
    assert report.completed == 1
    assert engine.get_plan(plan.id).subtasks[0].status == "completed"
    assert engine.get_pending_spawns() == []


def test_drain_loop_runs_plan_to_completion(tmp_path: Path) -> None:
    engine = create_engine(tmp_path, notifier=SilentNotifier())
    plan = engine.plan_task("task-1", "Fix login bug")
    engine.execute_next_ready(plan.id)
    executor = ScriptedExecutor()

    report = drain_loop(engine, executor, poll_interval_seconds=0, until_idle=True)

    assert report.processed == 4
    assert report.completed == 4
    assert engine.get_plan(plan.id).status == "completed"
    assert "**Previous Task Outputs:**" in executor.seen[1].task


def test_drain_reports_failures_and_stops_advancing(tmp_path: Path) -> None:
    engine = create_engine(tmp_path, notifier=SilentNotifier())
    plan = engine.plan_task("task-1", "Fix login bug")
    engine.execute_next_ready(plan.id)
    executor = ScriptedExecutor({"Diagnose": ExecutionOutcome(ok=False, error="stack overflow", exit_code=1)})

    report = drain_loop(engine, executor, poll_interval_seconds=0, until_idle=True)

    assert report.completed == 1
    assert report.failed == 1
    stored = engine.get_plan(plan.id)
    assert stored.status == "partial"
    assert stored.subtasks[1].error == "stack overflow"
    assert [s.status for s in stored.subtasks[2:]] == ["pending", "pending"]


def test_drain_skips_cancelled_agents(tmp_path: Path) -> None:
    engine = create_engine(tmp_path, notifier=SilentNotifier())
    plan = engine.plan_task("task-1", "Ship", "- One\n- Two")
    first, _ = engine.execute_next_ready(plan.id)
    engine.cancel_agent(first.id)

    report = drain_once(engine, ScriptedExecutor())

    assert report.processed == 1
    assert report.skipped == 0
    assert [s.status for s in engine.get_plan(plan.id).subtasks] == ["cancelled", "completed"]


def _entry(task: str = "do the thing") -> SpawnQueueEntry:
    return SpawnQueueEntry(agent_id="agent-1", agent_name="Agent-1", plan_id="plan-1", subtask_id="st-1", task=task)


def test_command_executor_reads_brief_from_stdin() -> None:
    script = "import os, sys; data = sys.stdin.read(); print('log line'); print('TASK_COMPLETE: got ' + data.strip() + ' for ' + os.environ['SUBTASK_ID'])"
    outcome = CommandExecutor([sys.executable, "-c", script]).run(_entry())

    assert outcome.ok is True
    assert outcome.summary == "got do the thing for st-1"
    assert "log line" in outcome.output


def test_command_executor_falls_back_to_last_line() -> None:
    outcome = CommandExecutor([sys.executable, "-c", "print('first'); print('last')"]).run(_entry())
    assert outcome.ok is True
    assert outcome.summary == "last"


def test_command_executor_reports_nonzero_exit() -> None:
    script = "import sys; sys.stderr.write('kaboom'); sys.exit(3)"
    outcome = CommandExecutor([sys.executable, "-c", script]).run(_entry())

    assert outcome.ok is False
    assert outcome.exit_code == 3
    assert outcome.error == "kaboom"


def test_command_executor_times_out() -> None:
    outcome = CommandExecutor([sys.executable, "-c", "import time; time.sleep(5)"], timeout_seconds=1).run(_entry())
    assert outcome.ok is False
    assert outcome.timed_out is True


def test_command_executor_handles_missing_binary(tmp_path: Path) -> None:
    outcome = CommandExecutor([str(tmp_path / "missing-binary")]).run(_entry())
    assert outcome.ok is False
    assert outcome.exit_code == 127


def test_command_executor_requires_command() -> None:
    with pytest.raises(ValueError):
        CommandExecutor([])

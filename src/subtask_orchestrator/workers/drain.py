"""Reference executor: drain the spawn queue by running a local command per sub-task."""

from __future__ import annotations

import os
import subprocess
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from loguru import logger

from ..constants import TASK_COMPLETE_PREFIX
from ..domain.models import SpawnQueueEntry
from ..errors import OrchestrationError
from ..orchestrator.service import OrchestrationEngine


_STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class ExecutionOutcome:
    ok: bool
    summary: str = ""
    output: str = ""
    error: str = ""
    exit_code: int = 0
    timed_out: bool = False


@dataclass
class DrainReport:
    processed: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    agents: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "processed": self.processed,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "agents": list(self.agents),
        }


class Executor(Protocol):
    def run(self, entry: SpawnQueueEntry) -> ExecutionOutcome:
        ...


def parse_task_complete(text: str) -> Optional[str]:
    """Return the summary from the last ``TASK_COMPLETE:`` line, if any."""
    summary: Optional[str] = None
    for line in (text or "").splitlines():
        stripped = line.strip()
        if stripped.startswith(TASK_COMPLETE_PREFIX):
            summary = stripped[len(TASK_COMPLETE_PREFIX):].strip()
    return summary


class CommandExecutor:
    """Run ``command`` with the task brief on stdin.

    Exit code 0 is success; the summary comes from a ``TASK_COMPLETE:`` line,
    falling back to the last non-empty stdout line.
    """

    def __init__(self, command: Sequence[str], timeout_seconds: Optional[int] = None) -> None:
        if not command:
            raise ValueError("executor command must not be empty")
        self.command = list(command)
        self.timeout_seconds = timeout_seconds

    def _env(self, entry: SpawnQueueEntry) -> dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "SUBTASK_AGENT_ID": entry.agent_id,
                "SUBTASK_AGENT_NAME": entry.agent_name,
                "SUBTASK_PLAN_ID": entry.plan_id,
                "SUBTASK_ID": entry.subtask_id,
                "SUBTASK_MODEL": entry.model,
                "SUBTASK_LABEL": entry.label,
            }
        )
        return env

    def run(self, entry: SpawnQueueEntry) -> ExecutionOutcome:
        try:
            proc = subprocess.run(
                self.command,
                input=entry.task,
                capture_output=True,
                text=True,
                env=self._env(entry),
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return ExecutionOutcome(ok=False, error=f"Executor timed out after {self.timeout_seconds}s", exit_code=124, timed_out=True)
        except OSError as exc:
            return ExecutionOutcome(ok=False, error=f"Executor failed to start: {exc}", exit_code=127)

        stdout = proc.stdout or ""
        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()[-_STDERR_TAIL_CHARS:]
            return ExecutionOutcome(ok=False, output=stdout, error=stderr or f"Executor exited with code {proc.returncode}", exit_code=proc.returncode)

        summary = parse_task_complete(stdout)
        if summary is None:
            lines = [line.strip() for line in stdout.splitlines() if line.strip()]
            summary = lines[-1] if lines else "Completed"
        return ExecutionOutcome(ok=True, summary=summary, output=stdout.strip() or summary)


def drain_once(engine: OrchestrationEngine, executor: Executor, *, auto_advance: bool = True) -> DrainReport:
    """Run every currently pending spawn once and report each outcome to the engine."""
    report = DrainReport()
    for entry in engine.get_pending_spawns():
        session_key = f"{entry.label}-{uuid.uuid4().hex[:6]}"
        try:
            engine.mark_spawn_processed(entry.agent_id, session_key)
        except OrchestrationError as exc:
            logger.info("Skipping spawn for {}: {}", entry.agent_id, exc.message)
            report.skipped += 1
            continue

        report.processed += 1
        report.agents.append(entry.agent_id)
        logger.info("Running {} for sub-task {}", entry.agent_name, entry.subtask_id)
        outcome = executor.run(entry)
        try:
            if outcome.ok:
                engine.report_result(entry.agent_id, outcome.summary, outcome.output)
                report.completed += 1
            else:
                engine.report_failure(entry.agent_id, outcome.error)
                report.failed += 1
        except OrchestrationError as exc:
            # The agent was cancelled or its plan deleted while it ran.
            logger.warning("Could not record outcome for {}: {}", entry.agent_id, exc.message)
            continue

        if auto_advance and outcome.ok:
            engine.execute_next_ready(entry.plan_id)
    return report


def drain_loop(
    engine: OrchestrationEngine,
    executor: Executor,
    *,
    poll_interval_seconds: float = 2.0,
    auto_advance: bool = True,
    until_idle: bool = False,
    max_iterations: Optional[int] = None,
) -> DrainReport:
    total = DrainReport()
    iterations = 0
    while max_iterations is None or iterations < max_iterations:
        iterations += 1
        report = drain_once(engine, executor, auto_advance=auto_advance)
        total.processed += report.processed
        total.completed += report.completed
        total.failed += report.failed
        total.skipped += report.skipped
        total.agents.extend(report.agents)
        if not engine.get_pending_spawns():
            if until_idle:
                break
            time.sleep(poll_interval_seconds)
    return total

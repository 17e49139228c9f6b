from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from ..board.file_board import FileTaskBoard
from ..board.interfaces import TaskBoard
from ..board.reconciler import BoardReconciler
from ..config import get_board_config, get_notification_config, get_orchestrator_config
from ..constants import (
    AGENT_CANCELLED,
    AGENT_COMPLETED,
    AGENT_EXECUTING,
    AGENT_FAILED,
    AGENT_LIVE_STATUSES,
    AGENT_QUEUED,
    DEFAULT_AGENT_MODEL,
    DEFAULT_CLEANUP_POLICY,
    PLAN_STATUS_COMPLETED,
    PLAN_STATUS_EXECUTING,
    PLAN_STATUS_PARTIAL,
    PLAN_STATUS_PLANNED,
    PLAN_TERMINAL_STATUSES,
    SUBTASK_ASSIGNED,
    SUBTASK_CANCELLED,
    SUBTASK_COMPLETED,
    SUBTASK_FAILED,
    SUBTASK_IN_PROGRESS,
    SUBTASK_PENDING,
)
from ..domain.models import AgentRecord, Plan, SpawnQueueEntry, Subtask, now_iso
from ..errors import ExternalFailureError, InvalidStateError, NotFoundError
from ..events.bus import EventBus
from ..notifications import ReviewNotifier, build_notifier
from ..planning.decomposer import decompose
from ..planning.linker import link
from ..planning.patterns import PatternRegistry
from ..storage.container import Container
from . import tracker
from .brief import render_task_brief


def _short(agent_id: str) -> str:
    return agent_id.split("-", 1)[-1][:8]


class OrchestrationEngine:
    """Plan tasks into sub-tasks, hand them to an executor and track them to completion.

    The engine never runs agents itself. Ready sub-tasks are appended to the
    spawn queue; an executor polls the queue and reports back through
    ``mark_spawn_processed``, ``report_result`` and ``report_failure``.
    """

    def __init__(
        self,
        container: Container,
        bus: EventBus,
        *,
        reconciler: Optional[BoardReconciler] = None,
        registry: Optional[PatternRegistry] = None,
    ) -> None:
        self.container = container
        self.bus = bus
        self.reconciler = reconciler or BoardReconciler(None)
        self.registry = registry or PatternRegistry()
        self._lock = threading.RLock()

    # -- planning ------------------------------------------------------------

    def plan_task(self, parent_task_id: str, title: str, description: str = "") -> Plan:
        if not str(parent_task_id or "").strip():
            raise InvalidStateError("parent_task_id is required")
        if not str(title or "").strip():
            raise InvalidStateError("title is required")
        decomposition = decompose(title, description, self.registry)
        subtasks = link(decomposition.subtasks, self.registry)
        plan = Plan(
            parent_task_id=parent_task_id,
            title=title,
            description=description or "",
            pattern=decomposition.pattern,
            subtasks=subtasks,
        )
        plan.status = PLAN_STATUS_PLANNED
        with self._lock:
            self.container.plans.create(plan)
        self.bus.emit(
            event_type="plan.created",
            entity_id=plan.id,
            payload={"parent_task_id": parent_task_id, "pattern": plan.pattern, "subtasks": len(subtasks)},
        )
        logger.info("Planned {} ({}) into {} sub-tasks for {}", plan.id, plan.pattern, len(subtasks), parent_task_id)
        return plan

    def get_plan(self, plan_id: str) -> Plan:
        plan = self.container.plans.get(plan_id)
        if plan is None:
            raise NotFoundError(f"Plan not found: {plan_id}")
        return plan

    def list_plans(self, parent_task_id: Optional[str] = None) -> list[Plan]:
        if parent_task_id:
            return self.get_plans_for_parent(parent_task_id)
        return self.container.plans.list()

    def get_plans_for_parent(self, parent_task_id: str) -> list[Plan]:
        return self.container.plans.list_for_parent(parent_task_id)

    def delete_plan(self, plan_id: str) -> bool:
        with self._lock:
            if not self.container.plans.delete(plan_id):
                raise NotFoundError(f"Plan not found: {plan_id}")
            removed = self.container.agents.delete_for_plan(plan_id)
        self.bus.emit(event_type="plan.deleted", entity_id=plan_id, payload={"agents_removed": removed})
        return True

    def get_ready_subtasks(self, plan_id: str) -> list[Subtask]:
        return tracker.ready_subtasks(self.get_plan(plan_id))

    def check_dependencies_satisfied(self, plan_id: str, subtask_id: str) -> bool:
        plan = self.get_plan(plan_id)
        subtask = plan.subtask(subtask_id)
        if subtask is None:
            raise NotFoundError(f"Sub-task not found: {subtask_id}")
        return tracker.dependencies_satisfied(plan, subtask)

    def get_plan_status(self, plan_id: str) -> dict[str, Any]:
        plan = self.get_plan(plan_id)
        agents = self.list_agents(plan_id)
        return {
            "plan": plan.to_dict(),
            "agents": [agent.to_dict() for agent in agents],
            "progress": tracker.progress(plan),
        }

    # -- agents --------------------------------------------------------------

    def get_agent(self, agent_id: str) -> AgentRecord:
        agent = self.container.agents.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent not found: {agent_id}")
        return agent

    def list_agents(self, plan_id: Optional[str] = None) -> list[AgentRecord]:
        agents = self.container.agents.list()
        if plan_id:
            agents = [agent for agent in agents if agent.plan_id == plan_id]
        return agents

    def list_active_agents(self) -> list[AgentRecord]:
        return [agent for agent in self.container.agents.list() if agent.status in AGENT_LIVE_STATUSES]

    def _live_subtask_ids(self, plan_id: str) -> set[str]:
        return {agent.subtask_id for agent in self.list_agents(plan_id) if agent.status in AGENT_LIVE_STATUSES}

    def create_subagent(self, plan_id: str, subtask_id: str, config: Optional[dict[str, Any]] = None) -> AgentRecord:
        config = dict(config or {})
        with self._lock:
            plan = self.get_plan(plan_id)
            subtask = plan.subtask(subtask_id)
            if subtask is None:
                raise NotFoundError(f"Sub-task not found: {subtask_id}")
            if plan.status in PLAN_TERMINAL_STATUSES:
                raise InvalidStateError(f"Plan {plan_id} is {plan.status}; no new agents can be spawned")
            if not tracker.is_ready(plan, subtask):
                raise InvalidStateError(f"Sub-task {subtask_id} is not ready (status {subtask.status})")
            if subtask_id in self._live_subtask_ids(plan_id):
                raise InvalidStateError(f"Sub-task {subtask_id} already has a live agent")

            orchestrator_cfg = get_orchestrator_config(self.container.config.load())
            agent = AgentRecord(plan_id=plan_id, subtask_id=subtask_id)
            agent.name = str(config.get("name") or f"Agent-{_short(agent.id)}")
            agent.model = str(config.get("model") or orchestrator_cfg.get("default_model") or DEFAULT_AGENT_MODEL)
            self.container.agents.upsert(agent)

            def _assign(stored: Plan) -> tuple[Plan, bool]:
                # Another process may have claimed the sub-task since the checks above.
                target = stored.subtask(subtask_id)
                if target is None:
                    raise NotFoundError(f"Sub-task not found: {subtask_id}")
                if stored.status in PLAN_TERMINAL_STATUSES:
                    raise InvalidStateError(f"Plan {plan_id} is {stored.status}; no new agents can be spawned")
                if not tracker.is_ready(stored, target):
                    raise InvalidStateError(f"Sub-task {subtask_id} is not ready (status {target.status})")
                if target.assigned_to and target.assigned_to != agent.id:
                    holder = self.container.agents.get(target.assigned_to)
                    if holder is not None and holder.status in AGENT_LIVE_STATUSES:
                        raise InvalidStateError(f"Sub-task {subtask_id} already has a live agent")
                if target.status == SUBTASK_PENDING:
                    tracker.transition_subtask(target, SUBTASK_ASSIGNED)
                target.assigned_to = agent.id
                started = stored.status == PLAN_STATUS_PLANNED
                if started:
                    stored.status = PLAN_STATUS_EXECUTING
                return stored, started

            try:
                plan, started = self.container.plans.mutate(plan_id, _assign)
            except (InvalidStateError, NotFoundError) as exc:
                self._abandon_agent(agent, exc.message)
                raise
            if started:
                self.bus.emit(event_type="plan.executing", entity_id=plan_id, payload={"parent_task_id": plan.parent_task_id})

            subtask = plan.subtask(subtask_id)
            assert subtask is not None
            outputs = tracker.dependency_outputs(plan, subtask)
            entry = SpawnQueueEntry(
                agent_id=agent.id,
                agent_name=agent.name,
                plan_id=plan_id,
                subtask_id=subtask_id,
                model=agent.model,
                label=f"subtask-{_short(agent.id)}",
                task=render_task_brief(subtask, outputs),
                cleanup_policy=str(config.get("cleanup_policy") or orchestrator_cfg.get("cleanup_policy") or DEFAULT_CLEANUP_POLICY),
                dependency_outputs=outputs,
            )
            try:
                self.container.spawn_queue.append(entry)
            except OSError as exc:
                logger.error("Spawn queue write failed for agent {}: {}", agent.id, exc)
                self._fail_agent(agent, f"Spawn queue write failed: {exc}")
                raise ExternalFailureError(f"Could not enqueue agent {agent.id}: {exc}") from exc

            agent.status = AGENT_QUEUED
            self.container.agents.upsert(agent)
        self.bus.emit(event_type="agent.queued", entity_id=agent.id, payload={"plan_id": plan_id, "subtask_id": subtask_id})
        logger.info("Queued {} for sub-task '{}'", agent.name, subtask.title)
        return agent

    def get_pending_spawns(self) -> list[SpawnQueueEntry]:
        queued = {agent.id for agent in self.container.agents.list() if agent.status == AGENT_QUEUED}
        return [entry for entry in self.container.spawn_queue.pending() if entry.agent_id in queued]

    def mark_spawn_processed(self, agent_id: str, session_key: str) -> AgentRecord:
        with self._lock:
            agent = self.get_agent(agent_id)
            if agent.status == AGENT_EXECUTING and agent.session_key == session_key:
                return agent
            if agent.status != AGENT_QUEUED:
                raise InvalidStateError(f"Agent {agent_id} is {agent.status}; only queued agents can be marked spawned")
            if self.container.spawn_queue.mark_spawned(agent_id, session_key) is None:
                raise NotFoundError(f"No spawn queue entry for agent {agent_id}")

            def _start(stored: Plan) -> Plan:
                target = stored.subtask(agent.subtask_id)
                if target is None:
                    raise NotFoundError(f"Sub-task not found: {agent.subtask_id}")
                tracker.transition_subtask(target, SUBTASK_IN_PROGRESS)
                return stored

            plan = self.container.plans.mutate(agent.plan_id, _start)
            agent.status = AGENT_EXECUTING
            agent.session_key = session_key
            agent.started_at = now_iso()
            self.container.agents.upsert(agent)
        self.bus.emit(event_type="agent.executing", entity_id=agent.id, payload={"session_key": session_key})
        self.reconciler.execution_started(plan)
        return agent

    def report_result(self, agent_id: str, result: str, output: Optional[str] = None) -> tuple[AgentRecord, Subtask]:
        """Record a successful sub-task; ``output`` is handed to dependents, defaulting to ``result``."""
        with self._lock:
            agent = self.get_agent(agent_id)
            if agent.status != AGENT_EXECUTING:
                raise InvalidStateError(f"Agent {agent_id} is {agent.status}; only executing agents can report results")

            def _complete(stored: Plan) -> Subtask:
                target = stored.subtask(agent.subtask_id)
                if target is None:
                    raise NotFoundError(f"Sub-task not found: {agent.subtask_id}")
                tracker.transition_subtask(target, SUBTASK_COMPLETED)
                target.result = result
                target.output = output if output is not None else result
                return target

            subtask = self.container.plans.mutate(agent.plan_id, _complete)
            agent.status = AGENT_COMPLETED
            agent.result = result
            agent.completed_at = now_iso()
            self.container.agents.upsert(agent)
        self.bus.emit(event_type="agent.completed", entity_id=agent.id, payload={"subtask_id": subtask.id})
        logger.info("Agent {} completed sub-task '{}'", agent.name, subtask.title)
        self.check_plan_completion(agent.plan_id)
        return agent, subtask

    def report_failure(self, agent_id: str, error: str) -> tuple[AgentRecord, Subtask]:
        with self._lock:
            agent = self.get_agent(agent_id)
            if agent.status not in {AGENT_QUEUED, AGENT_EXECUTING}:
                raise InvalidStateError(f"Agent {agent_id} is {agent.status}; it cannot fail now")
            subtask = self._fail_agent(agent, error)
        return agent, subtask

    def _abandon_agent(self, agent: AgentRecord, error: str) -> None:
        """Fail an agent that never got its sub-task; the sub-task is left as it is."""
        agent.status = AGENT_FAILED
        agent.error = error
        agent.completed_at = now_iso()
        self.container.agents.upsert(agent)
        logger.warning("Abandoned {} for sub-task {}: {}", agent.name, agent.subtask_id, error)

    def _fail_agent(self, agent: AgentRecord, error: str) -> Subtask:
        """Mark an agent and its sub-task failed, then settle the plan as partial."""

        def _fail(stored: Plan) -> Subtask:
            target = stored.subtask(agent.subtask_id)
            if target is None:
                raise NotFoundError(f"Sub-task not found: {agent.subtask_id}")
            tracker.transition_subtask(target, SUBTASK_FAILED)
            target.error = error
            return target

        subtask = self.container.plans.mutate(agent.plan_id, _fail)
        agent.status = AGENT_FAILED
        agent.error = error
        agent.completed_at = now_iso()
        self.container.agents.upsert(agent)
        self.bus.emit(event_type="agent.failed", entity_id=agent.id, payload={"subtask_id": subtask.id, "error": error})
        logger.warning("Agent {} failed sub-task '{}': {}", agent.name, subtask.title, error)
        self.check_plan_completion(agent.plan_id)
        return subtask

    def cancel_agent(self, agent_id: str) -> AgentRecord:
        with self._lock:
            agent = self.get_agent(agent_id)
            if agent.status == AGENT_CANCELLED:
                return agent
            if agent.status in {AGENT_COMPLETED, AGENT_FAILED}:
                raise InvalidStateError(f"Agent {agent_id} already {agent.status}")

            def _cancel(stored: Plan) -> None:
                target = stored.subtask(agent.subtask_id)
                if target is not None and target.status not in {SUBTASK_COMPLETED, SUBTASK_FAILED, SUBTASK_CANCELLED}:
                    tracker.transition_subtask(target, SUBTASK_CANCELLED)

            try:
                self.container.plans.mutate(agent.plan_id, _cancel)
            except NotFoundError:
                logger.info("Plan {} for agent {} no longer exists", agent.plan_id, agent_id)
            agent.status = AGENT_CANCELLED
            agent.cancelled_at = now_iso()
            self.container.agents.upsert(agent)
        self.bus.emit(event_type="agent.cancelled", entity_id=agent.id, payload={"subtask_id": agent.subtask_id})
        return agent

    def execute_next_ready(self, plan_id: str) -> list[AgentRecord]:
        """Queue an agent for every ready sub-task that has none; possibly an empty list."""
        spawned: list[AgentRecord] = []
        with self._lock:
            plan = self.get_plan(plan_id)
            if plan.status in PLAN_TERMINAL_STATUSES:
                logger.info("Plan {} is {}; nothing to execute", plan_id, plan.status)
                return spawned
            live = self._live_subtask_ids(plan_id)
            for subtask in tracker.ready_subtasks(plan):
                if subtask.id in live:
                    continue
                try:
                    spawned.append(self.create_subagent(plan_id, subtask.id))
                except ExternalFailureError as exc:
                    logger.error("Stopping execution of plan {}: {}", plan_id, exc.message)
                    break
        return spawned

    # -- completion ----------------------------------------------------------

    def check_plan_completion(self, plan_id: str) -> Plan:
        """Settle the plan as completed or partial; reconciles the board only on the transition."""
        with self._lock:

            def _settle(stored: Plan) -> tuple[Plan, Optional[str]]:
                if stored.status in PLAN_TERMINAL_STATUSES:
                    return stored, None
                outcome = tracker.completion_outcome(stored)
                if outcome is None:
                    return stored, None
                stored.status = outcome
                stored.completed_at = now_iso()
                if outcome == PLAN_STATUS_COMPLETED:
                    stored.result = tracker.completion_result(stored)
                return stored, outcome

            plan, outcome = self.container.plans.mutate(plan_id, _settle)

        if outcome == PLAN_STATUS_COMPLETED:
            self.bus.emit(event_type="plan.completed", entity_id=plan.id, payload={"parent_task_id": plan.parent_task_id})
            logger.info("Plan {} completed; parent task {} ready for review", plan.id, plan.parent_task_id)
            self.reconciler.plan_completed(plan)
        elif outcome == PLAN_STATUS_PARTIAL:
            self.bus.emit(event_type="plan.partial", entity_id=plan.id, payload={"parent_task_id": plan.parent_task_id})
            logger.warning("Plan {} finished partial", plan.id)
            self.reconciler.plan_partial(plan)
        return plan

    def sync_board(self, plan_id: Optional[str] = None) -> dict[str, Any]:
        if plan_id:
            plans = [self.get_plan(plan_id)]
        else:
            tracked = {PLAN_STATUS_EXECUTING, PLAN_STATUS_COMPLETED, PLAN_STATUS_PARTIAL}
            plans = [plan for plan in self.container.plans.list() if plan.status in tracked]
        updated: list[str] = []
        for plan in plans:
            percent = tracker.progress(plan)["percent"]
            if self.reconciler.sync_progress(plan, percent):
                updated.append(plan.id)
                self.bus.emit(event_type="board.synced", entity_id=plan.id, payload={"percent": percent})
        return {"checked": len(plans), "updated": updated}

    def recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        return self.bus.recent(limit)


def create_engine(
    project_dir: Path,
    *,
    board: Optional[TaskBoard] = None,
    notifier: Optional[ReviewNotifier] = None,
) -> OrchestrationEngine:
    """Wire storage, board, notifier and pattern registry for ``project_dir``."""
    container = Container(project_dir)
    cfg = container.config.load()
    board_cfg = get_board_config(cfg)
    orchestrator_cfg = get_orchestrator_config(cfg)

    if board is None:
        board = FileTaskBoard(
            container.state_root / str(board_cfg["path"]),
            container.state_root / "board.lock",
            lanes=board_cfg["lanes"],
        )
    if notifier is None:
        notifier = build_notifier(get_notification_config(cfg))

    registry = PatternRegistry()
    pattern_dir = orchestrator_cfg.get("pattern_dir")
    if pattern_dir:
        registry.load_from_yaml(container.state_root / str(pattern_dir))

    bus = EventBus(container.events, container.project_id)
    reconciler = BoardReconciler.from_config(board, notifier, board_cfg)
    return OrchestrationEngine(container, bus, reconciler=reconciler, registry=registry)

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional


PlanStatus = Literal["planning", "planned", "executing", "completed", "partial"]
SubtaskStatus = Literal["pending", "assigned", "in-progress", "completed", "failed", "cancelled"]
AgentStatus = Literal["spawning", "queued", "executing", "completed", "failed", "cancelled"]
QueueStatus = Literal["pending", "spawned"]
ExecutionMode = Literal["parallel", "sequential"]

_PLAN_STATUSES = {"planning", "planned", "executing", "completed", "partial"}
_SUBTASK_STATUSES = {"pending", "assigned", "in-progress", "completed", "failed", "cancelled"}
_AGENT_STATUSES = {"spawning", "queued", "executing", "completed", "failed", "cancelled"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def _opt_str(value: Any) -> Optional[str]:
    return str(value) if value is not None and value != "" else None


@dataclass
class Subtask:
    id: str = field(default_factory=lambda: _id("st"))
    index: int = 1
    title: str = ""
    description: str = ""
    status: SubtaskStatus = "pending"
    assigned_to: Optional[str] = None
    depends_on: list[str] = field(default_factory=list)
    execution_mode: ExecutionMode = "parallel"
    workflow_chain: Optional[str] = None
    workflow_step: Optional[str] = None
    workflow_keywords: list[str] = field(default_factory=list)
    output: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subtask":
        status = str(data.get("status") or "pending")
        if status not in _SUBTASK_STATUSES:
            status = "pending"
        mode = str(data.get("execution_mode") or "parallel")
        if mode not in {"parallel", "sequential"}:
            mode = "parallel"
        return cls(
            id=str(data.get("id") or _id("st")),
            index=int(data.get("index") or 1),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=status,
            assigned_to=_opt_str(data.get("assigned_to")),
            depends_on=[str(item) for item in list(data.get("depends_on") or [])],
            execution_mode=mode,
            workflow_chain=_opt_str(data.get("workflow_chain")),
            workflow_step=_opt_str(data.get("workflow_step")),
            workflow_keywords=[str(item) for item in list(data.get("workflow_keywords") or [])],
            output=_opt_str(data.get("output")),
            result=_opt_str(data.get("result")),
            error=_opt_str(data.get("error")),
            created_at=str(data.get("created_at") or now_iso()),
            started_at=_opt_str(data.get("started_at")),
            completed_at=_opt_str(data.get("completed_at")),
        )


@dataclass
class Plan:
    id: str = field(default_factory=lambda: _id("plan"))
    parent_task_id: str = ""
    title: str = ""
    description: str = ""
    status: PlanStatus = "planning"
    pattern: Optional[str] = None
    subtasks: list[Subtask] = field(default_factory=list)
    result: Optional[dict[str, Any]] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    completed_at: Optional[str] = None

    def subtask(self, subtask_id: str) -> Optional[Subtask]:
        for item in self.subtasks:
            if item.id == subtask_id:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["subtasks"] = [item.to_dict() for item in self.subtasks]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Plan":
        status = str(data.get("status") or "planning")
        if status not in _PLAN_STATUSES:
            status = "planning"
        subtasks = [Subtask.from_dict(item) for item in list(data.get("subtasks") or []) if isinstance(item, dict)]
        result = data.get("result")
        return cls(
            id=str(data.get("id") or _id("plan")),
            parent_task_id=str(data.get("parent_task_id") or ""),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=status,
            pattern=_opt_str(data.get("pattern")),
            subtasks=sorted(subtasks, key=lambda item: item.index),
            result=dict(result) if isinstance(result, dict) else None,
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
            completed_at=_opt_str(data.get("completed_at")),
        )


@dataclass
class AgentRecord:
    id: str = field(default_factory=lambda: _id("agent"))
    plan_id: str = ""
    subtask_id: str = ""
    name: str = ""
    model: str = ""
    status: AgentStatus = "spawning"
    session_key: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentRecord":
        status = str(data.get("status") or "spawning")
        if status not in _AGENT_STATUSES:
            status = "spawning"
        return cls(
            id=str(data.get("id") or _id("agent")),
            plan_id=str(data.get("plan_id") or ""),
            subtask_id=str(data.get("subtask_id") or ""),
            name=str(data.get("name") or ""),
            model=str(data.get("model") or ""),
            status=status,
            session_key=_opt_str(data.get("session_key")),
            created_at=str(data.get("created_at") or now_iso()),
            started_at=_opt_str(data.get("started_at")),
            completed_at=_opt_str(data.get("completed_at")),
            cancelled_at=_opt_str(data.get("cancelled_at")),
            result=_opt_str(data.get("result")),
            error=_opt_str(data.get("error")),
        )


@dataclass
class SpawnQueueEntry:
    agent_id: str = ""
    agent_name: str = ""
    plan_id: str = ""
    subtask_id: str = ""
    model: str = ""
    label: str = ""
    task: str = ""
    cleanup_policy: str = "delete"
    status: QueueStatus = "pending"
    created_at: str = field(default_factory=now_iso)
    session_key: Optional[str] = None
    spawned_at: Optional[str] = None
    dependency_outputs: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SpawnQueueEntry":
        status = str(data.get("status") or "pending")
        if status not in {"pending", "spawned"}:
            status = "pending"
        return cls(
            agent_id=str(data.get("agent_id") or ""),
            agent_name=str(data.get("agent_name") or ""),
            plan_id=str(data.get("plan_id") or ""),
            subtask_id=str(data.get("subtask_id") or ""),
            model=str(data.get("model") or ""),
            label=str(data.get("label") or ""),
            task=str(data.get("task") or ""),
            cleanup_policy=str(data.get("cleanup_policy") or "delete"),
            status=status,
            created_at=str(data.get("created_at") or now_iso()),
            session_key=_opt_str(data.get("session_key")),
            spawned_at=_opt_str(data.get("spawned_at")),
            dependency_outputs=[dict(item) for item in list(data.get("dependency_outputs") or []) if isinstance(item, dict)],
        )

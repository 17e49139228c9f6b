from __future__ import annotations

import contextlib
import json
import threading
import uuid
from collections import deque
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

from ..constants import QUEUE_PENDING, QUEUE_SPAWNED, SCHEMA_VERSION
from ..domain.models import AgentRecord, Plan, SpawnQueueEntry, Subtask, now_iso
from ..errors import NotFoundError
from ..io_utils import FileLock, append_jsonl, atomic_write_yaml, load_yaml_mapping
from .interfaces import AgentRepository, EventRepository, PlanRepository, SpawnQueueRepository


T = TypeVar("T")
R = TypeVar("R")

_MUTABLE_SUBTASK_FIELDS = {"status", "assigned_to", "output", "result", "error", "started_at", "completed_at"}


class _YamlCollectionRepo(Generic[T]):
    def __init__(
        self,
        path: Path,
        lock_path: Path,
        key: str,
        loader: Callable[[dict[str, Any]], T],
        dumper: Callable[[T], dict[str, Any]],
    ) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()
        self._key = key
        self._loader = loader
        self._dumper = dumper

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the in-process and cross-process locks for a full read-modify-write."""
        with self._thread_lock:
            with self._lock:
                yield

    def _load(self) -> list[T]:
        raw = load_yaml_mapping(self._path)
        items = raw.get(self._key, [])
        if not isinstance(items, list):
            return []
        out: list[T] = []
        for item in items:
            if isinstance(item, dict):
                out.append(self._loader(item))
        return out

    def _save(self, items: list[T]) -> None:
        payload = {"version": SCHEMA_VERSION, self._key: [self._dumper(item) for item in items]}
        atomic_write_yaml(self._path, payload)

    def read(self) -> list[T]:
        with self.locked():
            return self._load()


class FilePlanRepository(PlanRepository):
    def __init__(self, path: Path, lock_path: Path) -> None:
        self._repo = _YamlCollectionRepo[Plan](
            path,
            lock_path,
            "plans",
            loader=Plan.from_dict,
            dumper=lambda p: p.to_dict(),
        )

    def list(self) -> list[Plan]:
        return self._repo.read()

    def get(self, plan_id: str) -> Optional[Plan]:
        for plan in self.list():
            if plan.id == plan_id:
                return plan
        return None

    def create(self, plan: Plan) -> Plan:
        with self._repo.locked():
            plans = self._repo._load()
            plan.updated_at = now_iso()
            plans = [p for p in plans if p.id != plan.id]
            plans.append(plan)
            self._repo._save(plans)
        return plan

    def mutate(self, plan_id: str, fn: Callable[[Plan], R]) -> R:
        """Apply ``fn`` to the stored plan and persist it under a single lock hold."""
        with self._repo.locked():
            plans = self._repo._load()
            for idx, plan in enumerate(plans):
                if plan.id == plan_id:
                    result = fn(plan)
                    plan.updated_at = now_iso()
                    plans[idx] = plan
                    self._repo._save(plans)
                    return result
        raise NotFoundError(f"Plan not found: {plan_id}")

    def update_subtask(self, plan_id: str, subtask_id: str, patch: dict[str, Any]) -> Subtask:
        unknown = set(patch) - _MUTABLE_SUBTASK_FIELDS
        if unknown:
            raise ValueError(f"Sub-task fields are immutable: {', '.join(sorted(unknown))}")

        def _apply(plan: Plan) -> Subtask:
            subtask = plan.subtask(subtask_id)
            if subtask is None:
                raise NotFoundError(f"Sub-task not found: {subtask_id}")
            for name, value in patch.items():
                setattr(subtask, name, value)
            return subtask

        return self.mutate(plan_id, _apply)

    def list_for_parent(self, parent_task_id: str) -> list[Plan]:
        return [plan for plan in self.list() if plan.parent_task_id == parent_task_id]

    def delete(self, plan_id: str) -> bool:
        with self._repo.locked():
            plans = self._repo._load()
            keep = [p for p in plans if p.id != plan_id]
            if len(keep) == len(plans):
                return False
            self._repo._save(keep)
        return True


class FileAgentRepository(AgentRepository):
    def __init__(self, path: Path, lock_path: Path) -> None:
        self._repo = _YamlCollectionRepo[AgentRecord](
            path,
            lock_path,
            "agents",
            loader=AgentRecord.from_dict,
            dumper=lambda a: a.to_dict(),
        )

    def list(self) -> list[AgentRecord]:
        return self._repo.read()

    def get(self, agent_id: str) -> Optional[AgentRecord]:
        for agent in self.list():
            if agent.id == agent_id:
                return agent
        return None

    def upsert(self, agent: AgentRecord) -> AgentRecord:
        with self._repo.locked():
            agents = self._repo._load()
            for idx, existing in enumerate(agents):
                if existing.id == agent.id:
                    agents[idx] = agent
                    self._repo._save(agents)
                    return agent
            agents.append(agent)
            self._repo._save(agents)
        return agent

    def mutate(self, agent_id: str, fn: Callable[[AgentRecord], R]) -> R:
        with self._repo.locked():
            agents = self._repo._load()
            for idx, agent in enumerate(agents):
                if agent.id == agent_id:
                    result = fn(agent)
                    agents[idx] = agent
                    self._repo._save(agents)
                    return result
        raise NotFoundError(f"Agent not found: {agent_id}")

    def delete_for_plan(self, plan_id: str) -> int:
        with self._repo.locked():
            agents = self._repo._load()
            keep = [agent for agent in agents if agent.plan_id != plan_id]
            removed = len(agents) - len(keep)
            if removed:
                self._repo._save(keep)
        return removed


class FileSpawnQueueRepository(SpawnQueueRepository):
    """Append-only queue of spawn requests; entries are only ever marked spawned."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        self._repo = _YamlCollectionRepo[SpawnQueueEntry](
            path,
            lock_path,
            "queue",
            loader=SpawnQueueEntry.from_dict,
            dumper=lambda e: e.to_dict(),
        )

    def list(self) -> list[SpawnQueueEntry]:
        return self._repo.read()

    def append(self, entry: SpawnQueueEntry) -> SpawnQueueEntry:
        with self._repo.locked():
            entries = self._repo._load()
            entries.append(entry)
            self._repo._save(entries)
        return entry

    def pending(self) -> list[SpawnQueueEntry]:
        return [entry for entry in self.list() if entry.status == QUEUE_PENDING]

    def mark_spawned(self, agent_id: str, session_key: str) -> Optional[SpawnQueueEntry]:
        with self._repo.locked():
            entries = self._repo._load()
            for entry in entries:
                if entry.agent_id == agent_id:
                    if entry.status == QUEUE_SPAWNED:
                        return entry
                    entry.status = QUEUE_SPAWNED
                    entry.session_key = session_key
                    entry.spawned_at = now_iso()
                    self._repo._save(entries)
                    return entry
        return None


class FileEventRepository(EventRepository):
    def __init__(self, path: Path, lock_path: Path) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def append(self, *, event_type: str, entity_id: str, payload: dict[str, Any], project_id: str) -> dict[str, Any]:
        event = {
            "id": f"evt-{uuid.uuid4().hex[:10]}",
            "ts": now_iso(),
            "type": event_type,
            "entity_id": entity_id,
            "payload": payload,
            "project_id": project_id,
        }
        with self._thread_lock:
            with self._lock:
                append_jsonl(self._path, event)
        return event

    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        if limit <= 0 or not self._path.exists():
            return []
        with self._thread_lock:
            with self._lock:
                with self._path.open("r", encoding="utf-8") as handle:
                    selected = list(deque(handle, maxlen=limit))
        events: list[dict[str, Any]] = []
        for line in selected:
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                events.append(parsed)
        return events


class FileConfigRepository:
    def __init__(self, path: Path, lock_path: Path) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def load(self) -> dict[str, Any]:
        with self._thread_lock:
            with self._lock:
                return load_yaml_mapping(self._path)

    def save(self, config: dict[str, Any]) -> dict[str, Any]:
        with self._thread_lock:
            with self._lock:
                atomic_write_yaml(self._path, config)
        return config

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, TypeVar

from ..domain.models import AgentRecord, Plan, SpawnQueueEntry, Subtask


T = TypeVar("T")


class PlanRepository(ABC):
    @abstractmethod
    def list(self) -> list[Plan]:
        raise NotImplementedError

    @abstractmethod
    def get(self, plan_id: str) -> Optional[Plan]:
        raise NotImplementedError

    @abstractmethod
    def create(self, plan: Plan) -> Plan:
        raise NotImplementedError

    @abstractmethod
    def update_subtask(self, plan_id: str, subtask_id: str, patch: dict[str, Any]) -> Subtask:
        raise NotImplementedError

    @abstractmethod
    def mutate(self, plan_id: str, fn: Callable[[Plan], T]) -> T:
        raise NotImplementedError

    @abstractmethod
    def list_for_parent(self, parent_task_id: str) -> list[Plan]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, plan_id: str) -> bool:
        raise NotImplementedError


class AgentRepository(ABC):
    @abstractmethod
    def list(self) -> list[AgentRecord]:
        raise NotImplementedError

    @abstractmethod
    def get(self, agent_id: str) -> Optional[AgentRecord]:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, agent: AgentRecord) -> AgentRecord:
        raise NotImplementedError

    @abstractmethod
    def mutate(self, agent_id: str, fn: Callable[[AgentRecord], T]) -> T:
        raise NotImplementedError

    @abstractmethod
    def delete_for_plan(self, plan_id: str) -> int:
        raise NotImplementedError


class SpawnQueueRepository(ABC):
    @abstractmethod
    def list(self) -> list[SpawnQueueEntry]:
        raise NotImplementedError

    @abstractmethod
    def append(self, entry: SpawnQueueEntry) -> SpawnQueueEntry:
        raise NotImplementedError

    @abstractmethod
    def pending(self) -> list[SpawnQueueEntry]:
        raise NotImplementedError

    @abstractmethod
    def mark_spawned(self, agent_id: str, session_key: str) -> Optional[SpawnQueueEntry]:
        raise NotImplementedError


class EventRepository(ABC):
    @abstractmethod
    def append(self, *, event_type: str, entity_id: str, payload: dict[str, Any], project_id: str) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def list_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        raise NotImplementedError

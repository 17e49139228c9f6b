from __future__ import annotations

from typing import Any

from loguru import logger

from ..storage.interfaces import EventRepository


class EventBus:
    def __init__(self, repo: EventRepository, project_id: str) -> None:
        self._repo = repo
        self._project_id = project_id

    def emit(self, *, event_type: str, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        event = self._repo.append(
            event_type=event_type,
            entity_id=entity_id,
            payload=payload,
            project_id=self._project_id,
        )
        logger.debug("event {} {}", event_type, entity_id)
        return event

    def recent(self, limit: int = 100) -> list[dict[str, Any]]:
        return self._repo.list_recent(limit)

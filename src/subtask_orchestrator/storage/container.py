from __future__ import annotations

from pathlib import Path

from ..constants import AGENTS_FILE, CONFIG_FILE, EVENTS_FILE, PLANS_FILE, SPAWN_QUEUE_FILE
from .bootstrap import ensure_state_root
from .file_repos import (
    FileAgentRepository,
    FileConfigRepository,
    FileEventRepository,
    FilePlanRepository,
    FileSpawnQueueRepository,
)


class Container:
    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir.resolve()
        self.state_root = ensure_state_root(self.project_dir)

        self.plans = FilePlanRepository(self.state_root / PLANS_FILE, self.state_root / "plans.lock")
        self.agents = FileAgentRepository(self.state_root / AGENTS_FILE, self.state_root / "agents.lock")
        self.spawn_queue = FileSpawnQueueRepository(self.state_root / SPAWN_QUEUE_FILE, self.state_root / "spawn_queue.lock")
        self.events = FileEventRepository(self.state_root / EVENTS_FILE, self.state_root / "events.lock")
        self.config = FileConfigRepository(self.state_root / CONFIG_FILE, self.state_root / "config.lock")

    @property
    def project_id(self) -> str:
        return self.project_dir.name

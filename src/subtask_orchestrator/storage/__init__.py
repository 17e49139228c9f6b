from .bootstrap import ensure_state_root
from .container import Container
from .file_repos import (
    FileAgentRepository,
    FileConfigRepository,
    FileEventRepository,
    FilePlanRepository,
    FileSpawnQueueRepository,
)

__all__ = [
    "Container",
    "FileAgentRepository",
    "FileConfigRepository",
    "FileEventRepository",
    "FilePlanRepository",
    "FileSpawnQueueRepository",
    "ensure_state_root",
]

from .models import AgentRecord, Plan, SpawnQueueEntry, Subtask

__all__ = [
    "Plan",
    "Subtask",
    "AgentRecord",
    "SpawnQueueEntry",
]

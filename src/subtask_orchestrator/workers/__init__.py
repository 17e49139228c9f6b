from .drain import CommandExecutor, DrainReport, ExecutionOutcome, drain_loop, drain_once, parse_task_complete

__all__ = [
    "CommandExecutor",
    "DrainReport",
    "ExecutionOutcome",
    "drain_loop",
    "drain_once",
    "parse_task_complete",
]

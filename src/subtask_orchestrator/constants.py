STATE_DIR_NAME = ".subtask_orchestrator"
SCHEMA_VERSION = 1
WINDOWS_LOCK_BYTES = 4096

PLANS_FILE = "plans.yaml"
AGENTS_FILE = "agents.yaml"
SPAWN_QUEUE_FILE = "spawn_queue.yaml"
CONFIG_FILE = "config.yaml"
EVENTS_FILE = "events.jsonl"
BOARD_FILE = "board.yaml"

PLAN_STATUS_PLANNED = "planned"
PLAN_STATUS_EXECUTING = "executing"
PLAN_STATUS_COMPLETED = "completed"
PLAN_STATUS_PARTIAL = "partial"
PLAN_TERMINAL_STATUSES = {PLAN_STATUS_COMPLETED, PLAN_STATUS_PARTIAL}

SUBTASK_PENDING = "pending"
SUBTASK_ASSIGNED = "assigned"
SUBTASK_IN_PROGRESS = "in-progress"
SUBTASK_COMPLETED = "completed"
SUBTASK_FAILED = "failed"
SUBTASK_CANCELLED = "cancelled"

AGENT_SPAWNING = "spawning"
AGENT_QUEUED = "queued"
AGENT_EXECUTING = "executing"
AGENT_COMPLETED = "completed"
AGENT_FAILED = "failed"
AGENT_CANCELLED = "cancelled"
AGENT_LIVE_STATUSES = {AGENT_SPAWNING, AGENT_QUEUED, AGENT_EXECUTING}

QUEUE_PENDING = "pending"
QUEUE_SPAWNED = "spawned"

EXECUTION_PARALLEL = "parallel"
EXECUTION_SEQUENTIAL = "sequential"

WORKFLOW_TYPE_OTHER = "other"
EXPLICIT_PATTERN = "explicit"

DEFAULT_BOARD_LANES = ("backlog", "todo", "in-progress", "review", "done")
DEFAULT_IN_PROGRESS_LANE = "in-progress"
DEFAULT_REVIEW_LANE = "review"
DEFAULT_COMMENT_AUTHOR = "Subtask Orchestrator"
PROGRESS_MARKER = "Progress Update"
REVIEW_REQUIRED_MARKER = "Review Required"
RESULT_PREVIEW_CHARS = 100

DEFAULT_AGENT_MODEL = "default"
DEFAULT_CLEANUP_POLICY = "delete"
TASK_COMPLETE_PREFIX = "TASK_COMPLETE:"

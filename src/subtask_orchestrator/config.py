"""Read configuration blocks from `.subtask_orchestrator/config.yaml`."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

from .constants import (
    CONFIG_FILE,
    DEFAULT_AGENT_MODEL,
    DEFAULT_BOARD_LANES,
    DEFAULT_CLEANUP_POLICY,
    DEFAULT_COMMENT_AUTHOR,
    DEFAULT_IN_PROGRESS_LANE,
    DEFAULT_REVIEW_LANE,
    BOARD_FILE,
    STATE_DIR_NAME,
)
from .io_utils import load_yaml_mapping


DEFAULT_CONFIG: dict[str, Any] = {
    "orchestrator": {
        "default_model": DEFAULT_AGENT_MODEL,
        "cleanup_policy": DEFAULT_CLEANUP_POLICY,
        "pattern_dir": "patterns",
    },
    "board": {
        "path": BOARD_FILE,
        "lanes": list(DEFAULT_BOARD_LANES),
        "in_progress_lane": DEFAULT_IN_PROGRESS_LANE,
        "review_lane": DEFAULT_REVIEW_LANE,
        "comment_author": DEFAULT_COMMENT_AUTHOR,
    },
    "notifications": {
        "enabled": True,
        "command": [],
    },
    "executor": {
        "command": [],
        "poll_interval_seconds": 2.0,
        "timeout_seconds": 600,
        "auto_advance": True,
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}


def load_config(project_dir: Path) -> dict[str, Any]:
    """Load the raw config mapping; a missing file yields ``{}``."""
    return load_yaml_mapping(project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE)


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _block(config: dict[str, Any], name: str) -> dict[str, Any]:
    merged = copy.deepcopy(DEFAULT_CONFIG[name])
    raw = _get_nested(config, name)
    if isinstance(raw, dict):
        merged.update({key: value for key, value in raw.items() if value is not None})
    return merged


def get_orchestrator_config(config: dict[str, Any]) -> dict[str, Any]:
    return _block(config, "orchestrator")


def get_board_config(config: dict[str, Any]) -> dict[str, Any]:
    """Board lanes and comment settings, with lanes coerced to a non-empty list of strings."""
    block = _block(config, "board")
    lanes = [str(lane) for lane in list(block.get("lanes") or []) if str(lane).strip()]
    block["lanes"] = lanes or list(DEFAULT_BOARD_LANES)
    return block


def get_notification_config(config: dict[str, Any]) -> dict[str, Any]:
    block = _block(config, "notifications")
    block["command"] = [str(part) for part in list(block.get("command") or [])]
    block["enabled"] = bool(block.get("enabled", True))
    return block


def get_executor_config(config: dict[str, Any]) -> dict[str, Any]:
    block = _block(config, "executor")
    block["command"] = [str(part) for part in list(block.get("command") or [])]
    block["poll_interval_seconds"] = float(block.get("poll_interval_seconds") or 0)
    block["timeout_seconds"] = int(block.get("timeout_seconds") or 0) or None
    block["auto_advance"] = bool(block.get("auto_advance", True))
    return block


def get_logging_config(config: dict[str, Any]) -> dict[str, Any]:
    block = _block(config, "logging")
    block["level"] = str(block.get("level") or "INFO").upper()
    return block

from __future__ import annotations

import copy
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from ..config import DEFAULT_CONFIG
from ..constants import (
    AGENTS_FILE,
    BOARD_FILE,
    CONFIG_FILE,
    EVENTS_FILE,
    PLANS_FILE,
    SCHEMA_VERSION,
    SPAWN_QUEUE_FILE,
    STATE_DIR_NAME,
)
from ..io_utils import load_yaml_mapping
from .file_repos import FileConfigRepository


STATE_FILES = {
    "plans": PLANS_FILE,
    "agents": AGENTS_FILE,
    "spawn_queue": SPAWN_QUEUE_FILE,
    "board": BOARD_FILE,
    "events": EVENTS_FILE,
    "config": CONFIG_FILE,
}


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _schema_version(path: Path) -> int | None:
    if not path.exists():
        return None
    value = load_yaml_mapping(path).get("schema_version")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _needs_archive(base: Path) -> bool:
    if not base.exists():
        return False
    if not (base / CONFIG_FILE).exists():
        return False
    return _schema_version(base / CONFIG_FILE) != SCHEMA_VERSION


def ensure_state_root(project_dir: Path) -> Path:
    """Create the state directory, its collection files and a defaulted config.

    A state root written by an incompatible schema version is moved aside to a
    timestamped ``_legacy`` directory rather than being reinterpreted.
    """
    state_root = project_dir / STATE_DIR_NAME

    if _needs_archive(state_root):
        archive_target = project_dir / f"{STATE_DIR_NAME}_legacy_{_utc_stamp()}"
        logger.warning("Archiving incompatible state directory to {}", archive_target)
        state_root.rename(archive_target)

    state_root.mkdir(parents=True, exist_ok=True)

    for file_name in STATE_FILES.values():
        target = state_root / file_name
        if file_name.endswith(".yaml") and file_name != CONFIG_FILE and not target.exists():
            target.write_text(f"version: {SCHEMA_VERSION}\n", encoding="utf-8")
        if file_name.endswith(".jsonl") and not target.exists():
            target.touch()

    config_repo = FileConfigRepository(state_root / CONFIG_FILE, state_root / "config.lock")
    config = config_repo.load()
    config["schema_version"] = SCHEMA_VERSION
    for block, defaults in DEFAULT_CONFIG.items():
        config.setdefault(block, copy.deepcopy(defaults))
    config_repo.save(config)

    return state_root

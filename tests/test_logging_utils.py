from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from subtask_orchestrator.logging_utils import configure_logging


def test_configure_logging_writes_file_sink(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "orchestrator.log"
    try:
        configure_logging("debug", log_file)
        logger.debug("queued agent {}", "agent-1")
        logger.complete()
    finally:
        logger.remove()
        logger.add(sys.stderr)

    assert "queued agent agent-1" in log_file.read_text(encoding="utf-8")

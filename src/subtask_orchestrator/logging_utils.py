from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
    "{message}"
)


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure loguru logger with the specified level and an optional file sink."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file is not None:
        logger.add(
            str(log_file),
            level=level.upper(),
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )

from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger

__all__ = ["logger", "setup_logging"]

DEFAULT_LOG_FILE = Path.home() / ".termagent" / "termagent.log"


def setup_logging(level: str = "INFO", log_file: str | os.PathLike | None = None, *, stderr: bool = False) -> None:
    """Route loguru output away from the interactive terminal.

    The chat REPL owns stdout/stderr, so records go to a rotating file unless
    ``stderr`` is requested explicitly (``--verbose``).
    """
    logger.remove()
    if stderr:
        logger.add(sys.stderr, level=level.upper())

    log_path = Path(log_file or DEFAULT_LOG_FILE).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(log_path, level=level.upper(), rotation="5 MB", retention=3, enqueue=True)

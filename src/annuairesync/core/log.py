"""Logging setup shared by the CLI and the admin API."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_path: Path | None = None, level: int = logging.INFO) -> None:
    """Configure logging to output to stdout and, optionally, to a file.

    Calling this more than once does not add duplicate handlers.

    Args:
        log_path: Path to the log file (None logs to stdout only).
        level: Level of the annuairesync logger.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("annuairesync")
    root_logger.setLevel(level)
    if getattr(root_logger, "_annuairesync_configured", False):
        return

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        # Also capture uvicorn logs to file
        for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            logging.getLogger(uvicorn_name).addHandler(file_handler)

    root_logger._annuairesync_configured = True  # type: ignore[attr-defined]

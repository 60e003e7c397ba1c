"""Logging helpers shared by the server and the CLI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILENAME = "hue.log"


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """Configure console logging and, when ``log_dir`` is given, a log file.

    Calling this more than once does not stack duplicate handlers.
    """
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "_hue_console", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console._hue_console = True  # type: ignore[attr-defined]
        root.addHandler(console)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        log_file = (path / LOG_FILENAME).resolve()
        already = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_file for h in root.handlers
        )
        if not already:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    return root

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .paths import default_store_path

LOG_FILENAME = "aither-config.log"


def default_log_path() -> str:
    return str(default_store_path().parent / "logs" / LOG_FILENAME)


def configure_logging(
    log_path: Optional[str] = None,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure root logging for the command line tool.

    Tries the requested log file first; when it cannot be created (read-only
    home, missing permissions) falls back to a file in the current working
    directory. Library code only ever uses module loggers.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_aither_configured", False):
        return getattr(logger, "_aither_log_path", log_path or "")

    requested = log_path or default_log_path()
    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handlers: list[logging.Handler] = []
    try:
        Path(os.path.dirname(requested) or ".").mkdir(parents=True, exist_ok=True)
        file_handler: logging.Handler = logging.FileHandler(requested, encoding="utf-8")
        chosen = requested
    except OSError:
        chosen = str(Path.cwd() / LOG_FILENAME)
        file_handler = logging.FileHandler(chosen, encoding="utf-8")
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        # Console stays quiet unless verbose output was asked for.
        console.setLevel(level if level <= logging.DEBUG else logging.WARNING)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_aither_configured", True)
    setattr(logger, "_aither_log_path", chosen)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", requested, chosen)
    return chosen

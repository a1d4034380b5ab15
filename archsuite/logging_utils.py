from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

LOG_LEVEL_ENV = "LOG_LEVEL"


def level_from_env(environ: Optional[Mapping[str, str]] = None) -> int:
    """Map LOG_LEVEL (normal|debug) to a logging level. Unknown values mean normal."""

    env = os.environ if environ is None else environ
    value = (env.get(LOG_LEVEL_ENV) or "normal").strip().lower()
    if value == "debug":
        return logging.DEBUG
    return logging.INFO


def configure_logging(
    log_path: str,
    level: Optional[int] = None,
    also_console: bool = True,
) -> str:
    """Configure root logging with a file handler and an optional console handler.

    If ``log_path`` cannot be opened (read-only /var/log on a live system, a
    build dir that does not exist yet) the log is written next to the current
    working directory instead. Returns the file path actually used.
    """

    logger = logging.getLogger()
    logger.setLevel(level_from_env() if level is None else level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_archsuite_configured", False):
        return getattr(logger, "_archsuite_log_path", log_path)

    chosen_path = log_path
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler: logging.Handler = logging.FileHandler(log_path)
    except OSError:
        chosen_path = str(Path.cwd() / Path(log_path).name)
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_archsuite_configured", True)
    setattr(logger, "_archsuite_log_path", chosen_path)

    logging.getLogger(__name__).debug(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path
    )
    return chosen_path

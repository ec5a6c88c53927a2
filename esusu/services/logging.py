"""Logging setup for the ledger API server.

Output goes to stdout and to a log file. The level comes from LOG_LEVEL,
falling back to the configured ``log_level`` (INFO unless overridden).
"""

import logging
import os
import sys
from pathlib import Path

from esusu.config import settings

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood INFO with per-request or per-statement lines
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def get_log_level(name: str | None = None) -> int:
    """Resolve a level name to a logging constant.

    Args:
        name: Level name; defaults to LOG_LEVEL, then settings.log_level

    Returns:
        Logging level constant (INFO for unknown names)
    """
    level_name = (name or os.getenv("LOG_LEVEL") or settings.log_level).upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def setup_server_logging(log_file: str | None = None, level: str | None = None) -> None:
    """Point the root logger at stdout and a log file.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.

    Args:
        log_file: Log file path (default: settings.log_file); parent dirs are created
        level: Level name overriding LOG_LEVEL
    """
    log_path = Path(log_file or settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    log_level = get_log_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logging.getLogger(__name__).info(
        "Logging to %s at %s", log_path, logging.getLevelName(log_level)
    )

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from taskcalendar.config import SETTINGS, PROJECT_ROOT

LOG_FILE_NAME = "taskcalendar.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def log_file_path() -> Path:
    log_dir = Path(SETTINGS.log_dir)
    if not log_dir.is_absolute():
        log_dir = PROJECT_ROOT / log_dir
    return log_dir / LOG_FILE_NAME


def setup_logging(level: str | None = None, to_file: bool = True) -> None:
    """Configure root logging for the CLI.

    ``level`` overrides ``LOG_LEVEL``; ``to_file=False`` keeps output on the
    console only (read-only checkouts, one-off commands).
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]

    if to_file:
        log_file = log_file_path()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        handlers.insert(0, file_handler)

    logging.basicConfig(
        level=(level or SETTINGS.log_level).upper(),
        handlers=handlers,
        force=True,
    )
    # engine echo stays off unless explicitly raised
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

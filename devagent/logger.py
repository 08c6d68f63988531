"""Simple logging helpers for devagent."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Union

__all__ = ["setup_logger", "get_logger", "setup_error_log", "log_agent_error"]

DEFAULT_LOG_FILE = Path("~/.devagent/logs/agent.log").expanduser()
DEFAULT_ERROR_LOG = Path("~/.devagent/logs/agent-errors.log").expanduser()
ERROR_LOGGER_NAME = "devagent.errors"
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ERROR_FORMAT = "[%(asctime)s] %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3

# Categories written to the error log.
PARSE_ERROR = "PARSE_ERROR"
LOOP_GUARD = "LOOP_GUARD"
TOOL_ERROR = "TOOL_ERROR"
TRANSPORT_ERROR = "TRANSPORT_ERROR"
GUARD_FAILURE = "GUARD_FAILURE"


def setup_logger(
    name: str,
    verbose: bool = False,
    log_file: Union[str, Path, bool, None] = None,
) -> logging.Logger:
    """Configure and return a logger for this project.

    Args:
        name: Logger name, usually ``__name__`` from the caller module.
        verbose: ``True`` enables INFO logs; ``False`` keeps output at WARNING+.
        log_file: File logging target.
            - ``None`` or ``True``: use ``~/.devagent/logs/agent.log``
            - ``False``: disable file logging
            - ``str``/``Path``: use a custom log file path
    """
    logger = logging.getLogger(name)
    level = logging.INFO if verbose else logging.WARNING

    # Reconfigure safely if setup_logger is called more than once.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(level)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    log_path = _resolve_log_path(log_file, DEFAULT_LOG_FILE)
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    # Keep third-party libraries quiet unless they emit warnings or errors.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name without changing its configuration."""
    return logging.getLogger(name)


def setup_error_log(log_file: Union[str, Path, bool, None] = None) -> logging.Logger:
    """Point the append-only agent error log at ``log_file``.

    The error log is a flat file of categorized entries, one per line,
    separate from the regular application log so that parse failures and
    guard trips can be inspected after a run.
    """
    logger = logging.getLogger(ERROR_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.INFO)
    logger.propagate = False

    log_path = _resolve_log_path(log_file, DEFAULT_ERROR_LOG)
    if log_path is None:
        logger.addHandler(logging.NullHandler())
        return logger

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(ERROR_FORMAT))
    logger.addHandler(handler)
    return logger


def log_agent_error(kind: str, message: str,
                    metadata: Optional[Dict[str, Any]] = None) -> None:
    """Append one categorized entry to the agent error log."""
    logger = logging.getLogger(ERROR_LOGGER_NAME)
    if not logger.handlers:
        setup_error_log(False)
    line = f"{kind}: {message}"
    if metadata:
        line += f" | {json.dumps(metadata, default=str, ensure_ascii=False)}"
    logger.info(line)


def _resolve_log_path(log_file: Union[str, Path, bool, None],
                      default: Path) -> Path | None:
    """Translate ``log_file`` input to a concrete path or disable file logging."""
    if log_file is False:
        return None
    if log_file is None or log_file is True:
        return default
    return Path(log_file).expanduser()

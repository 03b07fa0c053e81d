"""Logging setup for applications using the client.

Library modules only log through ``logging.getLogger(__name__)`` below the
``chrisapi`` logger, which carries a ``NullHandler`` until an application
calls ``setup_logging``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import get_settings
from .exceptions import ChrisAPIError, RequestException

LOGGER_NAME = "chrisapi"

console = Console(stderr=True)


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> logging.Logger:
    """
    Send the client's log records to the console and optionally a file.

    Args:
        level: Log level name, defaults to ``CHRIS_LOG_LEVEL``
        log_file: Optional file receiving one JSON object per record
        json_format: Write JSON instead of rich text to stderr

    Returns:
        The ``chrisapi`` logger
    """
    level = level or get_settings().log_level

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers = []

    if json_format:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    return logger


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with the context of client errors."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1] is not None:
            error = record.exc_info[1]
            entry["exception_type"] = type(error).__name__
            entry["exception_message"] = str(error)
            if isinstance(error, RequestException):
                entry["request_error"] = error.to_dict()
            elif isinstance(error, ChrisAPIError):
                entry["error_context"] = error.context

        return json.dumps(entry, default=str)

"""
Logging setup for ClearCurate.

Components never configure logging themselves; they receive a logger through
their constructor. The entry point calls ``configure_logging`` once.
"""

import json
import logging
import sys
from typing import Optional

_RESERVED = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname", "levelno",
    "lineno", "module", "msecs", "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    """Format log records as one JSON object per line, including ``extra=`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_dict = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_dict[key] = value
            except (TypeError, ValueError):
                log_dict[key] = str(value)
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    Install a single stream handler on the package logger.

    Args:
        level: Log level name
        json_format: Emit JSON lines instead of plain text

    Returns:
        The configured ``clearcurate`` logger
    """
    logger = logging.getLogger("clearcurate")
    logger.setLevel(level.upper())
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """Return a child of ``parent`` (or of the package logger) for a component."""
    if parent is not None:
        return parent.getChild(name.rsplit(".", 1)[-1])
    return logging.getLogger(name)

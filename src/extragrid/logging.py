"""Logging configuration.

All output goes through loguru to stderr, leaving stdout to the CLI's JSON
payloads. ``json_logs`` switches from the colored console format to one JSON
object per line. Standard library loggers (httpx, httpcore) are intercepted
so their records land in the same sink.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from collections.abc import Callable
from typing import Any, TextIO

from loguru import logger

# loguru level -> severity understood by log shippers and the stdlib
_SEVERITY = {
    "TRACE": "DEBUG",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
    "<level>{message}</level>"
    "{exception}"
)


def record_to_dict(record: dict[str, Any]) -> dict[str, Any]:
    """Flatten a loguru record into a JSON-ready dict.

    Context passed as ``extra={...}`` is merged into the top level; keys
    starting with ``_`` are dropped.
    """
    entry: dict[str, Any] = {
        "severity": _SEVERITY.get(record["level"].name, "INFO"),
        "message": record["message"],
        "time": record["time"].isoformat(),
        "module": record["name"],
    }

    for key, value in record["extra"].items():
        if key == "extra" and isinstance(value, dict):
            entry.update(value)
        elif not key.startswith("_"):
            entry[key] = value

    exc = record["exception"]
    if exc is not None:
        entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
            "traceback": (
                "".join(traceback.format_exception(exc.type, exc.value, exc.traceback))
                if exc.traceback
                else None
            ),
        }
    return entry


def _json_sink(stream: TextIO | None) -> Callable[[Any], None]:
    def sink(message: Any) -> None:
        target = stream or sys.stderr
        target.write(json.dumps(record_to_dict(message.record), default=str) + "\n")
        target.flush()

    return sink


def configure_logging(
    *,
    json_logs: bool = False,
    log_level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Replace loguru's handlers with extragrid's.

    Args:
        json_logs: One JSON object per line instead of colored text
        log_level: Minimum loguru level name
        stream: Destination; the current ``sys.stderr`` when omitted
    """
    logger.remove()
    if json_logs:
        logger.add(_json_sink(stream), level=log_level, format="{message}", diagnose=False)
    else:
        logger.add(
            stream or sys.stderr,
            level=log_level,
            format=_CONSOLE_FORMAT,
            colorize=stream is None,
            diagnose=False,
        )
    _intercept_standard_logging(log_level)


class InterceptHandler(logging.Handler):
    """Forward standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _intercept_standard_logging(log_level: str) -> None:
    # stdlib has no TRACE or SUCCESS
    level = _SEVERITY.get(log_level, "INFO")
    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(level)

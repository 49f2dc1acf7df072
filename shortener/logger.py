"""Logger construction for the URL shortener service.

The logger is built once by the process entry point and passed explicitly to
every component that logs; nothing reaches for a module-level logger.

Environments
============
::
    local  →  text lines, DEBUG
    dev    →  JSON lines, DEBUG
    prod   →  JSON lines, INFO  (also used for unknown values)

Fields passed through ``extra=`` or a ``LoggerAdapter`` are appended to text
lines as ``key=value`` pairs and become top-level keys in JSON lines.
"""

import json
import logging
import sys
from typing import Any, Optional, TextIO

from shortener.enums import AppEnv

__all__ = ["ContextAdapter", "JSONFormatter", "TextFormatter", "setup_logger"]

LOGGER_NAME = "urlshortener"

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "asctime", "taskName"}
)


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = _extra_fields(record)
        if extra:
            line += " " + " ".join(f"{key}={value}" for key, value in extra.items())
        return line


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into each call's ``extra``."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def setup_logger(env: str, stream: Optional[TextIO] = None, name: str = LOGGER_NAME) -> logging.Logger:
    """Build the service logger for ``env``.

    Args:
        env: Deployment environment (``local``, ``dev`` or ``prod``).
        stream: Output stream, stdout by default.
        name: Logger name.

    Returns:
        logging.Logger: Logger with exactly one handler attached.
    """
    app_env = AppEnv.from_str(env)

    handler = logging.StreamHandler(stream or sys.stdout)
    if app_env is AppEnv.LOCAL:
        handler.setFormatter(TextFormatter())
    else:
        handler.setFormatter(JSONFormatter())

    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.INFO if app_env is AppEnv.PROD else logging.DEBUG)
    logger.propagate = False
    return logger

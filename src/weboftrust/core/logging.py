# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Logging setup for a Web of Trust node.

Log lines go to stderr as JSON (services) or as plain text (terminals).
Every protocol request runs in a correlation scope, and both formatters
stamp the scope's id on the lines written inside it. ``RequestLogger``
records requests and replies with insert URIs blanked out.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Third-party loggers that log every HTTP round trip at INFO
_QUIET_LOGGERS = ("httpx", "httpcore")


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Scope in which ``get_correlation_id()`` returns ``correlation_id`` (or a fresh uuid4)."""
    token = _correlation_id.set(correlation_id or str(uuid.uuid4()))
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id
        if record.levelno >= logging.WARNING:
            entry["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        extra_data = getattr(record, "extra_data", None)
        if extra_data is not None:
            entry["extra"] = extra_data
        return json.dumps(entry, default=str)


class StandardFormatter(logging.Formatter):
    """Plain text, with the first 8 characters of the correlation id."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)-8s %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        text = super().formatMessage(record)
        correlation_id = get_correlation_id()
        if correlation_id:
            return f"[{correlation_id[:8]}] {text}"
        return text


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install the node's handlers on the root logger.

    Arguments left as None come from ``WOT_LOG_LEVEL``, ``WOT_LOG_FORMAT``
    ("json", "text" or empty for JSON unless stderr is a terminal) and
    ``WOT_LOG_FILE``. The log file is always written as JSON.
    """
    from .config import get_config

    config = get_config()
    level = config.log_level if level is None else level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        log_format = config.log_format.lower()
        json_format = log_format == "json" or (log_format != "text" and not sys.stderr.isatty())
    log_file = config.log_file if log_file is None else log_file

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if json_format else StandardFormatter())
    root.addHandler(console)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class RequestLogger:
    """Logs protocol requests and replies at DEBUG.

    Parameters whose name contains one of ``SENSITIVE_PARAMS`` are replaced
    by ``[REDACTED]`` and long values are cut to ``MAX_VALUE_LENGTH``.
    """

    SENSITIVE_PARAMS = ("inserturi", "insert_uri", "privatekey", "secret", "password")
    MAX_VALUE_LENGTH = 500

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("weboftrust.protocol.requests")

    def log_request(self, message: str, params: dict[str, Any], level: int = logging.DEBUG) -> None:
        self.logger.log(
            level,
            f"Request: {message}",
            extra={"extra_data": {"message": message, "params": self._sanitize(params)}},
        )

    def log_reply(self, message: str, reply: str, duration_ms: float | None = None, level: int = logging.DEBUG) -> None:
        """Log which reply (``"Error"`` on failure) a request got and how long it took."""
        text = f"Reply: {message} -> {reply}"
        if duration_ms is not None:
            text += f" ({duration_ms:.1f}ms)"
        self.logger.log(
            level,
            text,
            extra={"extra_data": {"message": message, "reply": reply, "duration_ms": duration_ms}},
        )

    def _is_sensitive(self, key: Any) -> bool:
        name = str(key).lower()
        return any(s in name for s in self.SENSITIVE_PARAMS)

    def _sanitize(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: "[REDACTED]" if self._is_sensitive(key) else self._sanitize(value) for key, value in data.items()
            }
        if isinstance(data, list):
            return [self._sanitize(item) for item in data]
        if isinstance(data, str) and len(data) > self.MAX_VALUE_LENGTH:
            return data[: self.MAX_VALUE_LENGTH] + "..."
        return data


request_logger = RequestLogger()

"""
Structured logging for Converge.

Every record is a single JSON line. Records emitted during a convergence
pass carry the pass's ``request_id`` plus the task, resource and target
being converged, so one pass can be followed across discovery, rendering
and tagging in a log aggregator.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

_CONTEXT_KEYS = ("request_id", "task", "resource", "target", "operation")


def new_request_id() -> str:
    """Short correlation id for one convergence pass."""
    return uuid.uuid4().hex[:12]


class StructuredFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


class ConvergeLogger:
    """Logger for convergence passes.

    Context passed to :meth:`bind` is stamped on every record the returned
    logger emits; per-call keyword arguments override it.
    """

    def __init__(self, name: str = "converge", **context: str | None) -> None:
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)
        unknown = set(context) - set(_CONTEXT_KEYS)
        if unknown:
            raise TypeError(f"unknown log context keys: {sorted(unknown)}")
        self.context = {k: v for k, v in context.items() if v is not None}

    def bind(self, **context: str | None) -> ConvergeLogger:
        """Return a logger sharing this one's handler with extra context."""
        merged = {**self.context, **{k: v for k, v in context.items() if v is not None}}
        return ConvergeLogger(self.logger.name, **merged)

    def log_operation(
        self,
        level: int,
        message: str,
        *,
        exc_info: bool = False,
        **context: str | None,
    ) -> None:
        """Emit a structured log record.

        Args:
            level: Logging level (e.g. logging.INFO).
            message: Human-readable message.
            exc_info: Whether to include exception info.
            **context: Any of ``request_id``, ``task``, ``resource``,
                ``target``, ``operation``. Unbound records get a fresh
                ``request_id``.
        """
        extra: dict[str, Any] = {key: None for key in _CONTEXT_KEYS}
        extra.update(self.context)
        extra.update({k: v for k, v in context.items() if v is not None})
        unknown = set(extra) - set(_CONTEXT_KEYS)
        if unknown:
            raise TypeError(f"unknown log context keys: {sorted(unknown)}")
        if extra["request_id"] is None:
            extra["request_id"] = new_request_id()
        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log_operation(logging.DEBUG, message, **kwargs)


# Module-level singleton
cv_logger = ConvergeLogger()

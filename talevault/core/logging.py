"""Structured logging setup with operation correlation.

Backup, restore, retention and reconciliation all run as short async
operations that touch several stores; every record they emit carries the
operation id so a single run can be followed across modules.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    """Identifiers shared by all log records of one operation."""

    operation_id: str | None = None
    operation: str | None = None
    book_id: str | None = None


_EMPTY_CONTEXT = CorrelationContext()
_CORRELATION_CONTEXT: contextvars.ContextVar[CorrelationContext | None] = contextvars.ContextVar(
    "talevault_correlation_context",
    default=None,
)


def get_correlation_context() -> CorrelationContext:
    context = _CORRELATION_CONTEXT.get()
    if context is None:
        return _EMPTY_CONTEXT
    return context


class CorrelationFilter(logging.Filter):
    """Inject correlation fields into every ``LogRecord`` before formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_correlation_context()
        record.operation_id = context.operation_id
        record.operation = context.operation
        record.book_id = context.book_id
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object | None] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "operation_id": getattr(record, "operation_id", None),
            "operation": getattr(record, "operation", None),
            "book_id": getattr(record, "book_id", None),
        }
        if record.exc_info is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Configure root logging once with correlation-aware handlers."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.filters.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    if json_output:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s "
            "op=%(operation)s op_id=%(operation_id)s book_id=%(book_id)s "
            "%(message)s",
        )
    handler.setFormatter(formatter)

    correlation_filter = CorrelationFilter()
    handler.addFilter(correlation_filter)
    root_logger.addFilter(correlation_filter)
    root_logger.addHandler(handler)


@contextmanager
def correlation_scope(
    *,
    operation: str | None = None,
    operation_id: str | None = None,
    book_id: str | None = None,
) -> Iterator[CorrelationContext]:
    """Apply correlation ids to the current async execution context.

    Opening a scope with a new ``operation`` and no ``operation_id`` mints a
    fresh id; nested scopes otherwise inherit the outer values.
    """

    current = get_correlation_context()
    if operation is not None and operation_id is None:
        operation_id = uuid.uuid4().hex[:12]
    updated = CorrelationContext(
        operation_id=current.operation_id if operation_id is None else operation_id,
        operation=current.operation if operation is None else operation,
        book_id=current.book_id if book_id is None else book_id,
    )
    token = _CORRELATION_CONTEXT.set(updated)
    try:
        yield updated
    finally:
        _CORRELATION_CONTEXT.reset(token)


__all__ = [
    "CorrelationContext",
    "CorrelationFilter",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
]

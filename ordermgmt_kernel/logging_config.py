"""
Structured JSON logging for the order-management core.

Every record under the ``ordermgmt`` logger namespace is written as one JSON
line: timestamp, level, logger, the snake_case event message, the fields
bound in ``LogContext``, then the record's ``extra`` fields.  Exceptions that
carry a ``code`` (OrderMgmtError subclasses) are flattened into ``exc_*``
fields so a failed admission or import can be queried by code.

Context fields:
    correlation_id  request id from the HTTP layer
    tenant_id       tenant the request or job acts on
    job_id          Job Record being driven
    import_id       settlement import being processed
    actor_id        authenticated principal
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

LOGGER_ROOT = "ordermgmt"

CONTEXT_FIELDS = ("correlation_id", "tenant_id", "job_id", "import_id", "actor_id")

_context: ContextVar[dict[str, str]] = ContextVar("ordermgmt_log_context", default={})


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


def _merged(fields: dict[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise KeyError(f"Unknown log context field(s): {sorted(unknown)}")
    merged = dict(_context.get())
    merged.update({k: str(v) for k, v in fields.items() if v is not None})
    return merged


class LogContext:
    """Request- and job-scoped log fields, held in one ContextVar.

    Tenant and job identifiers travel here only for log enrichment; service
    code always receives ``tenant_id`` explicitly.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set fields for the rest of the current context.  None is ignored."""
        _context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields inside a ``with`` block, restoring the outer ones after."""
        token = _context.set(_merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name == "code" or name.startswith("_"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for name, value in vars(record).items():
            if name not in _RESERVED:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("jobs.runner")`` -> the ``ordermgmt.jobs.runner`` logger."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach the JSON handler to the ``ordermgmt`` root.  Later calls are no-ops."""
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)

    _handler.setFormatter(StructuredFormatter())
    root = logging.getLogger(LOGGER_ROOT)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(_handler)


def reset_logging() -> None:
    """Detach the handler so tests can reconfigure."""
    global _handler
    with _setup_lock:
        _handler = None
    root = logging.getLogger(LOGGER_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True

"""
Structured JSON logging for the workforce kernel.

Every line is one JSON object: a fixed envelope (``ts``, ``level``,
``logger``, ``message``), the lifecycle context bound by the service entry
point, and the event's own ``extra`` fields.  Explicit ``extra`` fields win
over bound context.

Context:
    The lifecycle services bind ``operation``, ``actor_id``, ``tenant_id``
    and ``entity_id`` around each unit of work, so kernel events logged
    deep inside a transition (``remittance_appended``,
    ``compare_and_set_conflict``) carry who did what to which record
    without threading those values through every call.  Transports may
    add a ``correlation_id``; the error presenter hands it back to users.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping
from uuid import UUID

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "operation",
    "actor_id",
    "tenant_id",
    "entity_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("workforce_log_context", default=_EMPTY)


def _clean(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
    return {k: str(v) for k, v in fields.items() if v is not None}


class LogContext:
    """
    Lifecycle fields attached to every log line of the current task.

    Backed by one ContextVar holding an immutable mapping, so threads and
    asyncio tasks each see their own context.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Add or replace fields; None values are ignored."""
        _context.set(MappingProxyType({**_context.get(), **_clean(fields)}))

    @staticmethod
    def get(name: str) -> str | None:
        return _context.get().get(name)

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Layer ``fields`` over the current context for the ``with`` block."""
        token = _context.set(MappingProxyType({**_context.get(), **_clean(fields)}))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _plain(value: Any) -> Any:
    """Lifecycle values as JSON: states by value, money as exact strings."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, and for kernel errors the code and public attributes."""
    fields: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        fields["code"] = code
        fields.update(
            (k, v) for k, v in vars(exc).items() if not k.startswith("_") and k != "args"
        )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (k, v) for k, v in vars(record).items() if k not in _STDLIB_KEYS
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_fields(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_plain)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "workforce_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger ``workforce_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``workforce_kernel`` tree; later calls do nothing."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    h = handler or logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    tree = logging.getLogger(_LOGGER_PREFIX)
    tree.setLevel(level)
    tree.propagate = False
    tree.addHandler(h)


def reset_logging() -> None:
    """Detach handlers and allow configure_logging again. Tests only."""
    global _configured
    with _lock:
        _configured = False
    tree = logging.getLogger(_LOGGER_PREFIX)
    tree.handlers.clear()
    tree.setLevel(logging.WARNING)

"""
Structured JSON logging for the ledger core.

Every record is one JSON object per line.  Business events are logged as
snake_case messages (``payment_recorded``, ``document_number_issued``) with
their data in ``extra``; request-scoped identifiers travel in
``LogContext`` and are stamped onto every record emitted while they are
set.
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
from collections.abc import Mapping
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})

_log_context: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    Known fields: correlation_id, actor_id, transaction_id, document_no.
    Values are stored as strings; None leaves a field unchanged.
    """

    FIELDS = ("correlation_id", "actor_id", "transaction_id", "document_no")

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {', '.join(sorted(unknown))}")
        current = dict(_log_context.get())
        current.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(current)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set context fields for the rest of the current context."""
        _log_context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_log_context.get())

    @classmethod
    def clear(cls) -> None:
        _log_context.set(_EMPTY)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Context manager: set fields on entry, restore the previous ones on exit."""
        return _BoundContext(cls._merged(fields))


class _BoundContext:

    def __init__(self, fields: Mapping[str, str]):
        self._fields = fields
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _log_context.set(self._fields)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _log_context.reset(self._token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _to_json(obj: Any) -> Any:
    """Render ledger values: ids and money as text, dates as ISO, enums by value."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, val) for key, val in vars(record).items()
            if key not in _STDLIB_KEYS and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            # LedgerError subclasses: machine code plus their structured fields
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            for key, val in vars(exc).items():
                if not key.startswith("_") and key != "args":
                    payload[f"exc_{key}"] = val
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

_ROOT = "ledger_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``ledger_kernel`` hierarchy (``get_logger("services.payment")``)."""
    return logging.getLogger(f"{_ROOT}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``ledger_kernel`` logger.

    Idempotent: only the first call takes effect until ``reset_logging()``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Remove handlers and allow reconfiguration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)

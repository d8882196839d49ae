"""
JSON-lines logging for the inventory ledger.

Every record is one JSON object:

    {"ts": ..., "level": ..., "logger": ..., "message": "sale_recorded",
     "operation": "sale", "actor_id": 42, "product_id": 1,
     "business_date": "2026-03-10", "transaction_number": ..., ...}

The message is an event name.  Ledger context bound with ``LogContext.bind``
follows the envelope, then whatever the call site passed as ``extra``.

When a record carries ``exc_info``, the exception becomes an ``error``
object.  For an InventoryLedgerError that object holds the error ``code``
and every structured attribute from ``details()``, so a rejected sale is
logged with its requested, available and shortage figures.  Ledger errors
are expected business outcomes and are logged without a traceback; any
other exception keeps one.
"""

__all__ = [
    "JsonLineFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from inventory_ledger.exceptions import InventoryLedgerError

ROOT_LOGGER = "inventory_ledger"

_EMPTY: Mapping[str, Any] = MappingProxyType({})


class LogContext:
    """
    Ledger fields attached to every record logged inside a ``bind`` block.

    The bound fields live in one ContextVar holding a read-only mapping, so
    nested binds, threads and asyncio tasks each see their own view.
    """

    FIELDS = ("correlation_id", "operation", "actor_id", "product_id", "business_date")

    _fields: ContextVar[Mapping[str, Any]] = ContextVar("ledger_log_context", default=_EMPTY)

    @classmethod
    def current(cls) -> dict[str, Any]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """
        Layer ``fields`` over the current context until the block exits.

        ``None`` values are skipped and dates are stored in ISO form.

        Raises:
            TypeError: A field outside ``FIELDS``.
        """
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(cls._fields.get())
        for name, value in fields.items():
            if value is None:
                continue
            merged[name] = value.isoformat() if isinstance(value, date) else value
        token = cls._fields.set(MappingProxyType(merged))
        try:
            yield
        finally:
            cls._fields.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def describe_error(exc: BaseException) -> dict[str, Any]:
    """The ``error`` object logged for ``exc``."""
    if isinstance(exc, InventoryLedgerError):
        return {
            **exc.details(),
            "type": type(exc).__name__,
            "code": exc.code,
            "message": str(exc),
        }
    return {"type": type(exc).__name__, "message": str(exc)}


class JsonLineFormatter(logging.Formatter):
    """Formats a record as one JSON object on one line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.current())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["error"] = describe_error(exc)
            if not isinstance(exc, InventoryLedgerError):
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger ``inventory_ledger.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON-lines handler to the ``inventory_ledger`` logger.

    Only the first call has an effect.  ``level`` may be a number or a
    level name such as ``"DEBUG"`` (as read from LedgerSettings.log_level).
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        level = resolved

    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    ledger_logger = logging.getLogger(ROOT_LOGGER)
    ledger_logger.setLevel(level)
    ledger_logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(JsonLineFormatter())
    ledger_logger.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Test suites only."""
    global _configured
    with _lock:
        _configured = False
    ledger_logger = logging.getLogger(ROOT_LOGGER)
    ledger_logger.handlers.clear()
    ledger_logger.setLevel(logging.WARNING)

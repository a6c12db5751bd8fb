"""
Module: stock_kernel.logging_config
Responsibility: JSON-lines logging for every stock_* package.  One JSON
    object per record: timestamp, level, logger, message, the bound
    LogContext fields, any ``extra=`` fields, and the structured attributes
    of a raised StockLedgerError.
Architecture position: Kernel.  Imports nothing from the project.

Usage::

    logger = get_logger("services.fulfillment")
    with LogContext.bind(actor="Ada", order_id=order.id):
        logger.info("fifo_fulfillment_completed", extra={"cogs_usd": cogs})
"""

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Iterator, Mapping
from uuid import UUID

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

ROOT_LOGGER_NAME = "stock_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor", "order_id", "variant_id")

_context: ContextVar[Mapping[str, str]] = ContextVar("stock_log_context", default={})


def _merged(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
    merged = dict(_context.get())
    merged.update({k: str(v) for k, v in fields.items() if v is not None})
    return merged


class LogContext:
    """
    Request-scoped log fields carried in a ContextVar.

    Safe across threads and asyncio tasks.  None values are ignored, other
    values are stored as strings (UUID order ids included).
    """

    @classmethod
    def set(cls, **fields: Any) -> None:
        _context.set(_merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Overlay fields for the duration of a ``with`` block."""
        token = _context.set(_merged(fields))
        try:
            yield cls
        finally:
            _context.reset(token)


_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
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
        if name.startswith("_") or name == "code":
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
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

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``stock_kernel`` namespace."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_handler_installed = False
_install_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Point the ``stock_kernel`` hierarchy at a JSON handler.

    The handler is installed once per process; later calls only change
    the level.  Records do not propagate to the root logger.
    """
    global _handler_installed

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False

    with _install_lock:
        if not _handler_installed:
            target = handler or logging.StreamHandler(stream or sys.stderr)
            target.setFormatter(StructuredFormatter())
            root.addHandler(target)
            _handler_installed = True
    return root


def reset_logging() -> None:
    """Remove the installed handler (test teardown)."""
    global _handler_installed
    with _install_lock:
        _handler_installed = False
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.WARNING)

"""
Structured JSON logging for the bundle kernel.

Kernel modules log through ``get_logger("services.split")``-style named
loggers, with a snake_case event name as the message and its data in
``extra``.  The formatter writes one JSON object per line, merged with whatever
``LogContext`` holds for the current operation (correlation id, order,
bundle, action).

Context lives in ContextVars, so it follows threads and asyncio tasks
without leaking between them.
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

KERNEL_LOGGER = "bundle_kernel"


class LogContext:
    """Operation-scoped fields stamped onto every log line."""

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"bundle_log_{name}", default=None)
        for name in ("correlation_id", "order_id", "bundle_id", "action")
    }

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set the given fields; None leaves a field as it is."""
        for name, value in fields.items():
            if value is not None:
                cls._vars[name].set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in cls._vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[None]:
        """Set fields for the duration of a block, then restore them.

        Names that are not context fields are ignored.
        """
        tokens = [
            (cls._vars[name], cls._vars[name].set(value))
            for name, value in fields.items()
            if value is not None and name in cls._vars
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}

# Exception attributes already reported under their own keys.
_EXC_SKIP = frozenset({"args", "code", "retryable"})


def _to_json(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        # Kernel errors carry code/retryable plus their constructor fields.
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        for attr in ("code", "retryable"):
            if hasattr(exc, attr):
                fields[f"exc_{attr}"] = getattr(exc, attr)
        for key, value in vars(exc).items():
            if not key.startswith("_") and key not in _EXC_SKIP:
                fields[f"exc_{key}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``bundle_kernel`` namespace."""
    return logging.getLogger(f"{KERNEL_LOGGER}.{name}")


_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the kernel logger.  Later calls are no-ops."""
    global _installed
    kernel = logging.getLogger(KERNEL_LOGGER)
    if _installed is not None and _installed in kernel.handlers:
        return
    _installed = handler if handler is not None else logging.StreamHandler(sys.stderr)
    _installed.setFormatter(StructuredFormatter())
    kernel.setLevel(level)
    kernel.propagate = False
    kernel.addHandler(_installed)


def reset_logging() -> None:
    """Drop every kernel handler so configure_logging can run again (tests)."""
    global _installed
    _installed = None
    kernel = logging.getLogger(KERNEL_LOGGER)
    kernel.handlers.clear()
    kernel.setLevel(logging.WARNING)

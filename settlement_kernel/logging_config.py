"""
Structured JSON logging for the settlement kernel.

Every record under the ``settlement_kernel`` logger is one JSON line:
timestamp, level, logger, message, the settlement context bound with
LogContext (pharmacy, period, cycle, actor, operation), any ``extra``
fields, and the structured attributes of a SettlementKernelError when one
is being logged.

Usage:
    logger = get_logger("services.settlement_procedure")
    with LogContext.bind(pharmacy_id=pharmacy.id, period_key="06/2025"):
        logger.info("commission_payment_applied", extra={"applied_amount": amount})
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
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_LOGGER_PREFIX = "settlement_kernel"


def _context_value(value: Any) -> str:
    return str(value.value if isinstance(value, Enum) else value)


# ---------------------------------------------------------------------------
# Settlement context
# ---------------------------------------------------------------------------


class LogContext:
    """
    Settlement fields attached to every record logged in the current
    thread or task.

    The whole context is one immutable mapping held in a ContextVar, so a
    bind() is undone by restoring the previous mapping.  Values are stored
    as strings; enums are stored by value.
    """

    FIELDS = frozenset({
        "correlation_id",
        "actor_id",
        "pharmacy_id",
        "period_key",
        "cycle",
        "operation",
    })

    _current: ContextVar[Mapping[str, str]] = ContextVar(
        "settlement_log_context", default=MappingProxyType({})
    )

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - cls.FIELDS
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(cls._current.get())
        merged.update({k: _context_value(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set context fields.  None values leave the field unchanged."""
        cls._current.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._current.get())

    @classmethod
    def clear(cls) -> None:
        cls._current.set(MappingProxyType({}))

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Context manager: set ``fields`` on entry, restore the previous context on exit."""
        return _BoundContext(cls._merged(fields))


class _BoundContext:

    def __init__(self, context: Mapping[str, str]):
        self._context = context
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = LogContext._current.set(self._context)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        LogContext._current.reset(self._token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RESERVED_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    """UUIDs, Decimals and enums as strings; dates in ISO format."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, val)
            for key, val in vars(record).items()
            if key not in _RESERVED_KEYS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # SettlementKernelError subclasses keep their inputs as attributes
        fields.update(
            (f"exc_{k}", v)
            for k, v in vars(exc).items()
            if not k.startswith("_") and k not in ("args", "code")
        )
        return fields


# ---------------------------------------------------------------------------
# Loggers
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the settlement_kernel namespace (``get_logger("db.engine")``)."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the settlement_kernel logger.

    Only the first call has an effect until reset_logging().  ``level``
    accepts a number or a name such as ``"DEBUG"``.  Records do not
    propagate to the root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(h)


def reset_logging() -> None:
    """Remove handlers and allow configure_logging() again.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)

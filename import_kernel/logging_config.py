"""
Structured JSON logging for the import engine.

Every record is one JSON object per line: a fixed envelope (``ts``,
``level``, ``logger``, ``message``), the job-scoped fields bound through
``LogContext``, the ``extra={...}`` payload, and for exceptions the
``code`` and structured attributes of ImportKernelError subclasses.

Fields whose name marks them as credentials (``token``,
``authorization``, ...) are masked before serialization; the GitHub
token travels in request headers and config objects and must never reach
a log sink.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "REDACTED",
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
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

# correlation_id: one runner loop; job_id: the job being driven;
# identity_key: the item being processed.
CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "job_id", "identity_key")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"import_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Thread-safe / async-safe holder for job-scoped log fields.

    Unknown field names are ignored, so callers can pass through whatever
    identifiers they have.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set context fields.  Only non-None values are updated."""
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                var.set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        """Return all non-None context fields as a dict."""
        ctx: dict[str, str] = {}
        for name, var in _context_vars.items():
            value = var.get()
            if value is not None:
                ctx[name] = value
        return ctx

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    def bind(**fields: str | None) -> "_BoundContext":
        """Context manager that sets fields on entry and restores on exit."""
        return _BoundContext(fields)


class _BoundContext:

    def __init__(self, fields: dict[str, str | None]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Any]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                self._tokens.append((var, var.set(value)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

_SECRET_MARKERS = ("token", "authorization", "password", "secret")
REDACTED = "***"


def _is_secret(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_MARKERS)


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and _is_secret(k) else _scrub(v)
            for k, v in value.items()
        }
    return value


class _JSONEncoder(json.JSONEncoder):
    """Handle UUID, datetime and enums in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        value = getattr(obj, "value", None)
        if isinstance(value, str):
            return value
        return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key in _STDLIB_KEYS or key in payload:
                continue
            payload[key] = REDACTED if _is_secret(key) else _scrub(val)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            # Structured attributes of ImportKernelError subclasses
            for k, v in vars(exc).items():
                if k.startswith("_") or k in ("args", "code"):
                    continue
                payload[f"exc_{k}"] = REDACTED if _is_secret(k) else v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder)


# ---------------------------------------------------------------------------
# Logger factory / initialization
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "import_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the import_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the import_kernel logger hierarchy (idempotent).

    ``level`` accepts a level number or name (``"DEBUG"``), so it can come
    straight from a command-line flag.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True

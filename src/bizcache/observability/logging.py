"""Structured logging for the cache and session layer.

Provides:
- JSON-formatted logs for log aggregation
- Request, tenant and user context carried in contextvars
- OpenTelemetry trace ids when a span is active

Usage:
    from bizcache.observability.logging import configure_logging, LogContext

    configure_logging()  # format and level from Settings

    with LogContext(tenant_id="42", user_id="7"):
        logger.info("Dashboard recomputed")  # includes tenant_id and user_id
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

from bizcache.config import Settings, get_settings

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
tenant_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("tenant_id", default="")
user_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("user_id", default="")

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "request_id": request_id_var,
    "tenant_id": tenant_id_var,
    "user_id": user_id_var,
}

# Attributes every LogRecord carries; anything else came in through `extra`.
_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


def _trace_ids() -> tuple[str, str] | None:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    {
        "timestamp": "2026-01-10T12:34:56.789+00:00",
        "level": "DEBUG",
        "logger": "bizcache.cache.service",
        "message": "cache get",
        "tenant_id": "42",
        "category": "cache",
        "hit": true,
        "key": "cache:dashboard:42",
        "latency_ms": 0.41
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name, var in _CONTEXT_VARS.items():
            value = var.get()
            if value:
                log_data[name] = value

        ids = _trace_ids()
        if ids:
            log_data["trace_id"], log_data["span_id"] = ids

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            log_data["error"] = exc_type.__name__
            log_data["error_message"] = str(exc)
            log_data["traceback"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Single-line output for local development.

    12:34:56.789 WARNING  bizcache.cache.redis  Redis get failed (timed out) [tenant=42 user=7]
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        stamp = f"{self.formatTime(record, self.datefmt)}.{int(record.msecs):03d}"
        context = " ".join(
            f"{name.removesuffix('_id')}={var.get()}"
            for name, var in _CONTEXT_VARS.items()
            if var.get()
        )
        line = f"{stamp} {record.levelname:<8} {record.name}  {record.getMessage()}"
        if context:
            line += f" [{context}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{line}\033[0m" if color else line


def configure_logging(
    settings: Settings | None = None,
    json_format: bool | None = None,
    level: str | None = None,
    use_colors: bool = True,
) -> None:
    """Route all bizcache logging through one stderr handler on the root logger.

    Format and level default to Settings.log_json and Settings.log_level.
    """
    settings = settings or get_settings()
    json_format = settings.log_json if json_format is None else json_format
    level_name = (level or settings.log_level).upper()

    root = logging.getLogger()
    root.setLevel(logging.getLevelName(level_name))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))
    root.addHandler(handler)

    # Client libraries are noisy at DEBUG
    for name in ("redis", "opentelemetry"):
        logging.getLogger(name).setLevel(logging.WARNING)


class LogContext:
    """Bind request, tenant and user ids to every record logged inside the block.

    Usage:
        with LogContext(tenant_id="42", request_id="abc"):
            logger.info("Processing")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.extra = {k: str(v) for k, v in kwargs.items() if k in _CONTEXT_VARS}
        self._tokens: dict[str, contextvars.Token[str]] = {}

    def __enter__(self) -> LogContext:
        for name, value in self.extra.items():
            self._tokens[name] = _CONTEXT_VARS[name].set(value)
        return self

    def __exit__(self, *exc: object) -> None:
        for name, token in self._tokens.items():
            _CONTEXT_VARS[name].reset(token)
        self._tokens.clear()

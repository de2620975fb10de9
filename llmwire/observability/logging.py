"""
llmwire - Structured JSON Logging

Structured logging with automatic context injection.

Features:
- JSON-formatted logs for easy parsing
- Per-call context (api, provider, model, session) injected via contextvars
- Sensitive data redaction (API keys, authorization headers, tokens)

The library only creates loggers under the ``llmwire.`` namespace and never
touches the root logger on its own. Applications opt in with
``setup_logging``.

Usage:
    from llmwire.observability.logging import setup_logging, get_logger

    setup_logging(level="DEBUG")

    logger = get_logger("llmwire.adapters")
    logger.info("Stream finished", stop_reason="stop")

Output:
    {"timestamp": "2025-01-15T10:30:00+00:00", "level": "INFO",
     "logger": "llmwire.adapters", "message": "Stream finished",
     "api": "anthropic-messages", "model": "claude-sonnet-4-5", "stop_reason": "stop"}
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union


_call_context: ContextVar[Optional["LogContext"]] = ContextVar("llmwire_log_context", default=None)

# Attributes every LogRecord has; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename",
    "funcName", "levelname", "levelno", "lineno",
    "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info",
    "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


@dataclass
class LogContext:
    """
    Per-call logging context.

    Stored in a contextvar, so every asyncio task sees its own copy.
    """
    api: str = ""
    provider: str = ""
    model: str = ""
    session_id: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def get_current(cls) -> Optional["LogContext"]:
        return _call_context.get()

    @classmethod
    def set_current(cls, ctx: Optional["LogContext"]):
        return _call_context.set(ctx)

    @classmethod
    def clear(cls):
        _call_context.set(None)

    def update(self, **kwargs):
        """Update context fields; unknown keys go to ``extra``."""
        for key, value in kwargs.items():
            if key != "extra" and hasattr(self, key):
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        if self.api:
            result["api"] = self.api
        if self.provider:
            result["provider"] = self.provider
        if self.model:
            result["model"] = self.model
        if self.session_id:
            result["session_id"] = self.session_id
        result.update(self.extra)
        return result


@contextmanager
def log_context(**fields) -> Iterator[LogContext]:
    """
    Bind context fields for the duration of a block.

    Usage:
        with log_context(api="openai-responses", model="gpt-5"):
            logger.info("Opening stream")
    """
    parent = LogContext.get_current()
    ctx = LogContext(
        api=parent.api if parent else "",
        provider=parent.provider if parent else "",
        model=parent.model if parent else "",
        session_id=parent.session_id if parent else "",
        extra=dict(parent.extra) if parent else {},
    )
    ctx.update(**fields)
    token = LogContext.set_current(ctx)
    try:
        yield ctx
    finally:
        _call_context.reset(token)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with automatic context injection.

    Output format:
    {
        "timestamp": "2025-01-15T10:30:00.123456+00:00",
        "level": "INFO",
        "logger": "llmwire.adapters",
        "message": "Log message",
        "api": "anthropic-messages",
        ... additional fields
    }
    """

    SENSITIVE_FIELDS = {
        "password", "secret", "token", "api_key", "apikey",
        "authorization", "auth", "credential", "private_key",
    }

    # Token counts are not secrets
    SAFE_FIELDS = {
        "input_tokens", "output_tokens", "total_tokens",
        "cache_read_tokens", "cache_write_tokens",
    }

    def __init__(
        self,
        include_timestamp: bool = True,
        include_level: bool = True,
        include_logger: bool = True,
        include_location: bool = False,
        redact_sensitive: bool = True,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_level = include_level
        self.include_logger = include_logger
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {}

        if self.include_timestamp:
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()
        if self.include_level:
            log_data["level"] = record.levelname
        if self.include_logger:
            log_data["logger"] = record.name

        log_data["message"] = record.getMessage()

        if self.include_location:
            log_data["location"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        ctx = LogContext.get_current()
        if ctx:
            log_data.update(ctx.to_dict())

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if self.redact_sensitive and self._is_sensitive(key):
                value = "[REDACTED]"
            log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)

    def _is_sensitive(self, field_name: str) -> bool:
        field_lower = field_name.lower()
        if field_lower in self.SAFE_FIELDS:
            return False
        return any(sensitive in field_lower for sensitive in self.SENSITIVE_FIELDS)


class StructuredLogger:
    """
    Structured logger wrapper.

    Keyword arguments other than ``exc_info``/``stack_info``/``stacklevel``
    become structured fields on the record.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _log(self, level: int, msg: str, *args, **kwargs):
        if not self._logger.isEnabledFor(level):
            return
        extra = dict(kwargs.pop("extra", None) or {})
        for key in list(kwargs.keys()):
            if key not in {"exc_info", "stack_info", "stacklevel"}:
                extra[key] = kwargs.pop(key)
        kwargs["extra"] = extra
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)


def setup_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = True,
    include_location: bool = False,
    redact_sensitive: bool = True,
    stream=None,
) -> logging.Logger:
    """
    Attach a handler to the ``llmwire`` logger.

    Safe to call again; the previous llmwire handler is replaced.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Use JSON formatter (True) or a plain text formatter (False)
        include_location: Include filename:lineno in logs
        redact_sensitive: Redact sensitive fields like API keys
        stream: Output stream, stderr by default

    Returns:
        The configured ``llmwire`` logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger("llmwire")
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        if getattr(handler, "_llmwire_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler._llmwire_handler = True  # type: ignore[attr-defined]

    if json_output:
        handler.setFormatter(JSONFormatter(
            include_location=include_location,
            redact_sensitive=redact_sensitive,
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))

    logger.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return logger


def setup_logging_from_settings() -> logging.Logger:
    """``setup_logging`` driven by ``LLMWIRE_LOG_LEVEL``/``LLMWIRE_LOG_FORMAT``."""
    from ..core.config import get_settings

    settings = get_settings()
    return setup_logging(level=settings.log_level, json_output=settings.log_format == "json")


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for ``name``; does not configure any handler."""
    return StructuredLogger(logging.getLogger(name))


class TimedOperation:
    """
    Context manager for timing operations.

    Usage:
        with TimedOperation("open_stream", logger) as timer:
            response = await client.send(request, stream=True)
        # Logs: "open_stream completed" with duration_ms
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        log_level: int = logging.DEBUG,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation
        self.logger = logger or get_logger("llmwire.timing")
        self.log_level = log_level
        self.extra = extra or {}
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> "TimedOperation":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        log_extra = {
            "operation": self.operation,
            "duration_ms": round(self.duration_ms, 2),
            **self.extra,
        }
        if exc_type:
            log_extra["error"] = str(exc_val)
            self.logger._log(logging.WARNING, f"{self.operation} failed", extra=log_extra)
        else:
            self.logger._log(self.log_level, f"{self.operation} completed", extra=log_extra)

    async def __aenter__(self) -> "TimedOperation":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)

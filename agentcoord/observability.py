"""
Agent Coordination Observability

Structured logging and operation timing for the coordination core.
Provides correlation IDs, context propagation and a JSON log handler.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Coordinator / CLI                     │
    │  logger.info("msg", intent_hash=x)   @timed_operation   │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                   CoordinationLogger                     │
    │  correlation IDs, component tag, structured context     │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │          StructuredHandler (json) | text handler         │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import functools
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class Component(Enum):
    """Coordination core components for categorization."""
    CANONICAL = "canonical"
    DIGEST = "digest"
    STORE = "store"
    SIGNATURE = "signature"
    COORDINATOR = "coordinator"
    EVENTS = "events"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    component: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                component=getattr(record, "component", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def _text_handler(stream: Any = None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    return handler


class CoordinationLogger:
    """
    Structured logger for coordination components.

    Includes the correlation ID and component in every event; keyword
    arguments become the structured `context`.

    Loggers built by `get_logger` follow the observability config: level and
    format are re-read before each record, so settings loaded from a file
    after import still apply.
    """

    def __init__(
        self,
        name: str,
        component: Component,
        level: str = "info",
        fmt: str = "json",
        follow_config: bool = False,
    ):
        self.name = name
        self.component = component
        self._logger = logging.getLogger(f"agentcoord.{component.value}.{name}")
        self._logger.propagate = False
        self._follow_config = follow_config
        self._handler: Optional[logging.Handler] = None
        self._applied: Tuple[str, str] = ("", "")
        self._apply_lock = threading.Lock()
        self._apply(level, fmt)

    def _apply(self, level: str, fmt: str) -> None:
        with self._apply_lock:
            if (level, fmt) == self._applied:
                return
            self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
            if fmt != self._applied[1]:
                if self._handler is not None:
                    self._logger.removeHandler(self._handler)
                if self._handler is not None or not self._logger.handlers:
                    self._handler = StructuredHandler() if fmt == "json" else _text_handler()
                    self._logger.addHandler(self._handler)
            self._applied = (level, fmt)

    def _sync(self) -> None:
        if self._follow_config:
            from agentcoord.config import get_config

            obs = get_config().observability
            self._apply(obs.log_level.get(), obs.log_format.get())

    @property
    def std_logger(self) -> logging.Logger:
        self._sync()
        return self._logger

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._sync()
        extra = {
            "component": self.component.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, error_code: str = "", **context: Any) -> None:
        self._log(logging.WARNING, message, error_code=error_code, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, or a fresh one if none is in scope."""
    return correlation_id_var.get() or generate_correlation_id()


def get_logger(name: str, component: Component) -> CoordinationLogger:
    """Get a logger that follows the observability config section."""
    from agentcoord.config import get_config

    obs = get_config().observability
    return CoordinationLogger(
        name,
        component,
        level=obs.log_level.get(),
        fmt=obs.log_format.get(),
        follow_config=True,
    )


T = TypeVar("T")


def timed_operation(
    logger: CoordinationLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for timing and logging operations.

    Each call runs under its own correlation ID unless the caller already
    set one.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            token = None
            if not correlation_id_var.get():
                token = set_correlation_id(generate_correlation_id())
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
                if token is not None:
                    correlation_id_var.reset(token)
        return wrapper
    return decorator

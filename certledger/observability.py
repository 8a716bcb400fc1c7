"""
certledger observability

Structured logging and a tamper-evident audit trail for privileged
operations.

    Application code
        logger.info("msg", asset_id=x)     audit.record("evaluate", ...)
                 │                                   │
        CertLogger (layer, operation, context)   AuditLogger (hash chain)
                 │                                   │
        logging "certledger.*"  ──►  StructuredHandler (JSON lines) | text

Loggers live under the ``certledger`` namespace and propagate to it;
``configure_logging`` installs the single handler there.
"""

from __future__ import annotations

import contextvars
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
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from certledger.core import canonical_json_bytes, sha256_bytes

ROOT_LOGGER = "certledger"

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class Layer(Enum):
    """certledger components for categorization."""
    LEDGER = "ledger"
    STORE = "store"
    ACCESS = "access"
    LIFECYCLE = "lifecycle"
    QUERY = "query"
    CONFIG = "config"
    CLI = "cli"
    AUDIT = "audit"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
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
                layer=getattr(record, "layer", ""),
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


def configure_logging(
    level: str = "info",
    fmt: str = "json",
    stream: Any = None,
) -> logging.Logger:
    """Install the certledger handler on the package root logger.

    Replaces any handler a previous call installed, so it is safe to call
    once per CLI invocation.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper()))

    for h in list(root.handlers):
        if getattr(h, "_certledger", False):
            root.removeHandler(h)

    if fmt == "json":
        handler: logging.Handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler._certledger = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    return root


class CertLogger:
    """
    Structured logger for certledger components.

    Includes the correlation ID and layer in every record and passes
    keyword context through to the handler.
    """

    def __init__(self, name: str, layer: Layer):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.{layer.value}.{name}")

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
        extra = {
            "layer": self.layer.value,
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

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

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
        error_code: str = "",
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            error_code=error_code,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one on first use."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: Layer) -> CertLogger:
    return CertLogger(name, layer)


T = TypeVar("T")


def timed_operation(
    logger: CertLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations.

    Failures are logged with the exception's ``error_code`` and re-raised.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            error_code = ""
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                error_code = getattr(exc, "error_code", type(exc).__name__)
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(
                    operation_name,
                    duration_ms,
                    success=not error_code,
                    error_code=error_code,
                )
        return wrapper
    return decorator


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@dataclass
class AuditEvent:
    """An audit log entry for a privileged operation."""
    event_id: str
    timestamp: str
    action: str
    resource_id: str
    outcome: str  # success, denied, failure
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    previous_event_digest: Optional[str] = None
    event_digest: str = ""

    def __post_init__(self):
        if not self.event_digest:
            self.event_digest = self.compute_digest()

    def compute_digest(self) -> str:
        content = {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "action": self.action,
            "resource_id": self.resource_id,
            "outcome": self.outcome,
            "details": self.details,
            "previous_event_digest": self.previous_event_digest,
        }
        return sha256_bytes(canonical_json_bytes(content))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Tamper-evident audit logger.

    Each event carries the digest of its predecessor, so editing or dropping
    an entry breaks ``verify_chain``. Events are also emitted through the
    structured logger.
    """

    def __init__(self, logger: Optional[CertLogger] = None):
        self._logger = logger or get_logger("audit", Layer.AUDIT)
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    def record(
        self,
        action: str,
        resource_id: str,
        outcome: str,
        **details: Any,
    ) -> AuditEvent:
        with self._lock:
            previous = self._events[-1].event_digest if self._events else None
            event = AuditEvent(
                event_id=f"evt-{len(self._events) + 1:012d}",
                timestamp=datetime.now(timezone.utc).isoformat(),
                action=action,
                resource_id=resource_id,
                outcome=outcome,
                correlation_id=get_correlation_id(),
                details=details,
                previous_event_digest=previous,
            )
            self._events.append(event)

        self._logger.info(
            f"AUDIT: {action} on {resource_id or '-'} -> {outcome}",
            operation="audit",
            event_id=event.event_id,
            event_digest=event.event_digest,
            outcome=outcome,
        )
        return event

    def verify_chain(self) -> Tuple[bool, Optional[int]]:
        """
        Verify the audit chain integrity.

        Returns (valid, first_invalid_index).
        """
        with self._lock:
            for i, event in enumerate(self._events):
                if event.compute_digest() != event.event_digest:
                    return (False, i)
                expected_prev = self._events[i - 1].event_digest if i > 0 else None
                if event.previous_event_digest != expected_prev:
                    return (False, i)
            return (True, None)

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def export(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [e.to_dict() for e in self._events]

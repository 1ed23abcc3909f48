# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across engine, services and API
# CREATED: 12 OCT 2026
# ============================================================================
"""
Structured Logging

Modules log through plain `logging.getLogger(__name__)`. What this module
adds is the context those records are formatted with:

- log_context() binds instance/step/template ids for the duration of a
  block. Bindings nest and live in a ContextVar, so concurrent requests
  on one event loop never see each other's ids.
- StructuredFormatter (LOG_FORMAT=json) emits one JSON object per record.
- ConsoleFormatter prints the bound ids inline for local runs.
- log_checkpoint() records a named marker for a scheduler pass.

Usage:
    from core.logging import log_context

    with log_context(instance_id="inst-123", operation="advance"):
        logger.info("Advancing instance")
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class LogContext:
    """Ids bound to the records logged inside a log_context() block."""
    instance_id: Optional[str] = None
    step_id: Optional[str] = None
    template_id: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def bind(self, **values: Any) -> "LogContext":
        known = {f.name for f in fields(self)} - {"extra"}
        updates = {k: v for k, v in values.items() if k in known}
        extra = {**self.extra, **{k: v for k, v in values.items() if k not in known}}
        return replace(self, extra=extra, **updates)

    def to_dict(self) -> Dict[str, Any]:
        """Bound fields only; unset ids are left out."""
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        result.update(self.extra)
        return result


_current: ContextVar[LogContext] = ContextVar("workflow_log_context", default=LogContext())


def get_current_context() -> LogContext:
    return _current.get()


@contextmanager
def log_context(**values: Any):
    """
    Bind context fields for the enclosed block.

    Fields not named by LogContext (e.g. `action_type`) are kept in
    `extra`. Inner blocks inherit and override outer bindings.

    Example:
        with log_context(instance_id="inst-123"):
            with log_context(step_id="step-9"):
                logger.info("Evaluating condition")
    """
    token = _current.set(_current.get().bind(**values))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = get_current_context().to_dict()
        if context:
            entry["context"] = context

        checkpoint = getattr(record, "checkpoint", None)
        if checkpoint:
            entry["checkpoint"] = checkpoint

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry["source"] = f"{record.filename}:{record.lineno}"
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Readable single-line records with the bound ids inline."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(name)s%(bound)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        context = get_current_context()
        ids = [
            f"{label}={value}"
            for label, value in (
                ("template", context.template_id),
                ("instance", context.instance_id),
                ("step", context.step_id),
            )
            if value
        ]
        record.bound = f" [{', '.join(ids)}]" if ids else ""
        return super().format(record)


def configure_logging(level: Union[str, int] = "INFO", json_output: bool = False) -> None:
    """
    Install one stdout handler on the root logger.

    Args:
        level: Log level name or number
        json_output: Use StructuredFormatter instead of ConsoleFormatter
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_output else ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)


# ============================================================================
# CHECKPOINTS
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named marker such as "scheduler_pass_completed".

    The payload is attached to the record as `checkpoint`, together with
    the ids bound at the call site.
    """
    payload: Dict[str, Any] = {"name": name, **get_current_context().to_dict()}
    if data:
        payload["data"] = data
    (logger or logging.getLogger("checkpoint")).info(
        f"CHECKPOINT: {name}", extra={"checkpoint": payload}
    )


__all__ = [
    "LogContext",
    "StructuredFormatter",
    "ConsoleFormatter",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]

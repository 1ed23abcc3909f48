# ============================================================================
# ACTION HANDLER REGISTRY
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Action handler registration and lookup
# PURPOSE: One handler per ActionType; config and completion schemas
# CREATED: 12 OCT 2026
# ============================================================================
"""
Action Handler Registry

Every ActionType has one handler. A handler owns two pydantic schemas:

- config_model: the step's `action_config`, checked when a template is
  written and again before the handler runs.
- completion_model: the payload a user sends when completing the step.

On start and complete the handler writes its own data into the step's
`action_data` and may return context updates, which the instance
service merges into the instance context in the same transaction.

Design:
- Handlers are registered at import time via decorator
- Fail-fast on duplicate registration; override() replaces explicitly
- Lookup of an unregistered action type raises

Usage:
    from handlers import get_action_registry

    handler = get_action_registry().get(step.action_type)
    updates = handler.handle_completion(step, payload, by="lawyer-1")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from core.contracts import ActionType
from core.errors import ActionHandlerError, ActionRegistryError
from core.models import InstanceStep

logger = logging.getLogger(__name__)


# ============================================================================
# HANDLER TYPES
# ============================================================================

class EmptyConfig(BaseModel):
    """Config for action types that take none. Unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")


@dataclass
class ActionContext:
    """
    Context passed to handler hooks.

    `data` is the step's action_data, mutated in place. Context updates
    collected here are returned to the caller, never written directly.
    """
    step: InstanceStep
    config: BaseModel
    by: Optional[str] = None
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    instance_context: Mapping[str, Any] = field(default_factory=dict)
    context_updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def data(self) -> Dict[str, Any]:
        return self.step.action_data

    @property
    def timestamp(self) -> str:
        return self.now.isoformat()

    def update_context(self, **values: Any) -> None:
        self.context_updates.update(values)


class ActionHandler:
    """
    Base class for action handlers.

    Subclasses set action_type and the two models, and override start()
    and/or complete(). A missing payload is validated as `{}` when
    payload_required is set, so required fields are reported.
    """

    action_type: ClassVar[ActionType]
    config_model: ClassVar[Type[BaseModel]] = EmptyConfig
    completion_model: ClassVar[Optional[Type[BaseModel]]] = None
    payload_required: ClassVar[bool] = False

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate_config(self, config: Optional[Mapping[str, Any]]) -> BaseModel:
        """
        Parse a step's action_config.

        Raises:
            ActionHandlerError: code INVALID_CONFIG
        """
        try:
            parsed = self.config_model.model_validate(dict(config or {}))
        except ValidationError as e:
            raise ActionHandlerError(
                f"Invalid {self.action_type.value} config",
                code="INVALID_CONFIG",
                errors=e.errors(),
            ) from e
        self.check_config(parsed)
        return parsed

    def check_config(self, config: BaseModel) -> None:
        """Cross-field checks the schema cannot express."""

    def parse_payload(self, payload: Any) -> Optional[BaseModel]:
        """
        Parse a completion payload.

        Returns None when there is no completion model, or when the
        payload is empty and not required.

        Raises:
            ActionHandlerError: code INVALID_PAYLOAD
        """
        if self.completion_model is None:
            return None
        if not payload and not self.payload_required:
            return None
        if payload is not None and not isinstance(payload, Mapping):
            raise ActionHandlerError(
                f"{self.action_type.value} completion payload must be an object",
                code="INVALID_PAYLOAD",
            )
        try:
            return self.completion_model.model_validate(dict(payload or {}))
        except ValidationError as e:
            raise ActionHandlerError(
                f"Invalid {self.action_type.value} completion payload",
                code="INVALID_PAYLOAD",
                errors=e.errors(),
            ) from e

    # =========================================================================
    # HOOKS
    # =========================================================================

    def start(self, ctx: ActionContext) -> None:
        """Called when the step moves READY -> IN_PROGRESS."""

    def complete(self, ctx: ActionContext, payload: Optional[BaseModel]) -> None:
        """Called before the step moves IN_PROGRESS -> COMPLETED."""

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def _context(
        self,
        step: InstanceStep,
        by: Optional[str],
        now: Optional[datetime],
        instance_context: Optional[Mapping[str, Any]],
    ) -> ActionContext:
        return ActionContext(
            step=step,
            config=self.validate_config(step.action_data.get("config")),
            by=by,
            now=now or datetime.now(timezone.utc),
            instance_context=instance_context or {},
        )

    def handle_start(
        self,
        step: InstanceStep,
        by: Optional[str] = None,
        now: Optional[datetime] = None,
        instance_context: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Run the start hook. Returns context updates."""
        ctx = self._context(step, by, now, instance_context)
        self.start(ctx)
        return ctx.context_updates

    def handle_completion(
        self,
        step: InstanceStep,
        payload: Any = None,
        by: Optional[str] = None,
        now: Optional[datetime] = None,
        instance_context: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Validate the payload and run the complete hook. Returns context updates."""
        ctx = self._context(step, by, now, instance_context)
        self.complete(ctx, self.parse_payload(payload))
        return ctx.context_updates

    def describe(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "handler": type(self).__name__,
            "config_schema": self.config_model.model_json_schema(),
            "completion_schema": (
                self.completion_model.model_json_schema() if self.completion_model else None
            ),
            "payload_required": self.payload_required,
        }


# ============================================================================
# REGISTRY
# ============================================================================

class ActionRegistry:
    """ActionType -> handler instance."""

    def __init__(self):
        self._handlers: Dict[ActionType, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        """
        Register a handler.

        Raises:
            ActionRegistryError: A handler is already registered for the type
        """
        if handler.action_type in self._handlers:
            raise ActionRegistryError(
                f"Handler already registered for type {handler.action_type.value}"
            )
        self._handlers[handler.action_type] = handler
        logger.debug(f"Registered action handler: {handler.action_type.value} ({type(handler).__name__})")

    def override(self, handler: ActionHandler) -> None:
        """Register a handler, replacing any existing one for the type."""
        self._handlers[handler.action_type] = handler

    def get(self, action_type: ActionType) -> ActionHandler:
        """
        Raises:
            ActionRegistryError: No handler for the type
        """
        handler = self._handlers.get(ActionType(action_type))
        if handler is None:
            raise ActionRegistryError(f"No handler registered for type {ActionType(action_type).value}")
        return handler

    def list(self) -> List[ActionHandler]:
        return list(self._handlers.values())

    def clear(self) -> None:
        """Primarily for testing."""
        self._handlers.clear()


# Global registry
_registry = ActionRegistry()

H = TypeVar("H", bound=Type[ActionHandler])


def register_action_handler(cls: H) -> H:
    """
    Class decorator: instantiate and register a handler in the global registry.

    Example:
        @register_action_handler
        class TaskHandler(ActionHandler):
            action_type = ActionType.TASK
    """
    _registry.register(cls())
    return cls


def get_action_registry() -> ActionRegistry:
    """Get the global registry."""
    return _registry


__all__ = [
    "ActionContext",
    "ActionHandler",
    "ActionRegistry",
    "EmptyConfig",
    "register_action_handler",
    "get_action_registry",
]

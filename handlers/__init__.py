# ============================================================================
# ACTION HANDLERS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Action handler registration and lookup
# PURPOSE: Register and discover handlers by action type
# CREATED: 12 OCT 2026
# ============================================================================
"""
Action Handlers

Usage:
    from handlers import get_action_registry

    handler = get_action_registry().get(ActionType.APPROVAL_LAWYER)
    handler.validate_config(step.action_config)
"""

from handlers.registry import (
    ActionContext,
    ActionHandler,
    ActionRegistry,
    EmptyConfig,
    get_action_registry,
    register_action_handler,
)

# Import handler module to trigger registration
import handlers.actions  # noqa: F401 - import for side effects

__all__ = [
    "ActionContext",
    "ActionHandler",
    "ActionRegistry",
    "EmptyConfig",
    "get_action_registry",
    "register_action_handler",
]

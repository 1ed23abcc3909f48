# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 12 OCT 2026
# ============================================================================

from core.contracts import (
    ActionState,
    ActionType,
    CompoundLogic,
    ConditionOperator,
    ConditionType,
    DependencyLogic,
    InstanceStatus,
    RoleScope,
)
from core.errors import WorkflowError, WorkflowValidationError, ValidationIssue
from core.models import (
    InstanceStep,
    TemplateStep,
    WorkflowInstance,
    WorkflowTemplate,
)

__all__ = [
    # Enums
    "ActionState",
    "ActionType",
    "CompoundLogic",
    "ConditionOperator",
    "ConditionType",
    "DependencyLogic",
    "InstanceStatus",
    "RoleScope",
    # Errors
    "WorkflowError",
    "WorkflowValidationError",
    "ValidationIssue",
    # Models
    "InstanceStep",
    "TemplateStep",
    "WorkflowInstance",
    "WorkflowTemplate",
]

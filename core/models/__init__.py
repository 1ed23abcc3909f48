# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 12 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the case workflow engine.
"""

from core.models.conditions import (
    AlwaysCondition,
    CompoundCondition,
    ConditionConfig,
    InvalidCondition,
    SimpleCondition,
    StoredConditionConfig,
    SwitchCondition,
    condition_config_errors,
    parse_condition_config,
)
from core.models.template import TemplateStep, WorkflowTemplate
from core.models.instance import (
    STEP_TRANSITIONS,
    InstanceStep,
    WorkflowInstance,
    materialize_instance_steps,
)

__all__ = [
    # Conditions
    "SimpleCondition",
    "CompoundCondition",
    "AlwaysCondition",
    "SwitchCondition",
    "ConditionConfig",
    "InvalidCondition",
    "StoredConditionConfig",
    "condition_config_errors",
    "parse_condition_config",
    # Template
    "TemplateStep",
    "WorkflowTemplate",
    # Instance
    "STEP_TRANSITIONS",
    "InstanceStep",
    "WorkflowInstance",
    "materialize_instance_steps",
]

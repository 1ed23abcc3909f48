# ============================================================================
# WORKFLOW TEMPLATE MODEL
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core model - Workflow template/blueprint
# PURPOSE: Define the ordered step graph that instances are created from
# LAST_REVIEWED: 12 OCT 2026
# EXPORTS: WorkflowTemplate, TemplateStep
# DEPENDENCIES: pydantic
# ============================================================================
"""
Workflow Template Models

A WorkflowTemplate is the blueprint for a case workflow.
It defines:
- Which steps exist, identified by their `order`
- What each step asks for (action type, role, config)
- Dependencies between steps (by order reference)
- Activation conditions evaluated against the instance context

Templates are versioned. A published version (is_active=True) is
immutable; edits go into a new draft version.
Each instantiation copies the steps into a WorkflowInstance.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from core.config import get_defaults
from core.contracts import (
    ActionType,
    ConditionType,
    DependencyLogic,
    RoleScope,
    StepOrder,
)
from core.models.conditions import ConditionConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_dependency_logic() -> DependencyLogic:
    return DependencyLogic(get_defaults().scheduler.default_dependency_logic)


class TemplateStep(BaseModel):
    """
    Definition of a single step in a template.

    This is the TEMPLATE - what the step asks for.
    InstanceStep (in instance.py) is the INSTANCE - runtime state.
    """
    order: StepOrder = Field(..., ge=0, description="Position in the template, unique")
    title: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = None

    action_type: ActionType = Field(default=ActionType.TASK)
    role_scope: RoleScope = Field(default=RoleScope.LAWYER)
    required: bool = True
    action_config: Dict[str, Any] = Field(default_factory=dict)

    # Graph
    depends_on: List[StepOrder] = Field(
        default_factory=list,
        description="Orders of the steps this step waits for"
    )
    dependency_logic: DependencyLogic = Field(default_factory=_default_dependency_logic)

    # Activation
    condition_type: ConditionType = Field(default=ConditionType.ALWAYS)
    condition_config: Optional[ConditionConfig] = None

    @field_validator("depends_on", mode="before")
    @classmethod
    def handle_scalar_input(cls, v):
        """Allow a single order (or null) as shorthand."""
        if v is None:
            return []
        if isinstance(v, int):
            return [v]
        return v


class WorkflowTemplate(BaseModel):
    """
    A versioned workflow template.

    Primary key: (template_id, version)
    """
    template_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=128)
    description: Optional[str] = None
    version: int = Field(default=1, ge=1)
    is_active: bool = Field(default=False, description="Published and instantiable")

    steps: List[TemplateStep] = Field(default_factory=list)

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    published_at: Optional[datetime] = None

    def get_step(self, order: StepOrder) -> TemplateStep:
        """Get a step by order."""
        for step in self.steps:
            if step.order == order:
                return step
        raise KeyError(f"Step {order} not found in template '{self.template_id}'")

    def ordered_steps(self) -> List[TemplateStep]:
        return sorted(self.steps, key=lambda s: s.order)

    def next_version(self) -> "WorkflowTemplate":
        """Draft copy of this template with the version bumped."""
        now = _utcnow()
        return self.model_copy(
            update={
                "version": self.version + 1,
                "is_active": False,
                "created_at": now,
                "updated_at": now,
                "published_at": None,
                "steps": [step.model_copy(deep=True) for step in self.steps],
            }
        )


__all__ = ["TemplateStep", "WorkflowTemplate"]

# ============================================================================
# WORKFLOW INSTANCE MODELS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core model - Instance and step runtime state
# PURPOSE: Track one running workflow and the state of each of its steps
# LAST_REVIEWED: 12 OCT 2026
# EXPORTS: WorkflowInstance, InstanceStep, materialize_instance_steps
# DEPENDENCIES: pydantic
# ============================================================================
"""
Workflow Instance Models

Key concept:
- WorkflowTemplate.TemplateStep = TEMPLATE (what to do)
- InstanceStep = INSTANCE (runtime state for one case)

Each WorkflowInstance creates N InstanceStep records (one per template
step). Template steps reference each other by order; instance steps
reference each other by step_id. The conversion happens exactly once,
in materialize_instance_steps().

Step lifecycle:
    1. Created PENDING at instantiation
    2. READY when dependencies are met and the condition holds
       (or SKIPPED when the condition does not hold)
    3. IN_PROGRESS when the assignee starts it
    4. COMPLETED when the assignee finishes it
    READY and IN_PROGRESS steps may also be SKIPPED by an admin.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from core.contracts import (
    ActionState,
    ActionType,
    ConditionType,
    DependencyLogic,
    InstanceStatus,
    RoleScope,
    StepId,
    StepOrder,
)
from core.errors import ValidationIssue, WorkflowTransitionError, WorkflowValidationError
from core.models.conditions import StoredConditionConfig
from core.models.template import WorkflowTemplate


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_instance_id() -> str:
    return f"inst-{uuid.uuid4().hex[:16]}"


def new_step_id() -> str:
    return f"step-{uuid.uuid4().hex[:16]}"


# Forward-only lifecycle. Same-state "transitions" are rejected so that a
# repeated action surfaces as a conflict instead of a silent no-op.
STEP_TRANSITIONS: Dict[ActionState, frozenset] = {
    ActionState.PENDING: frozenset({ActionState.READY, ActionState.SKIPPED}),
    ActionState.READY: frozenset({ActionState.IN_PROGRESS, ActionState.SKIPPED}),
    ActionState.IN_PROGRESS: frozenset({ActionState.COMPLETED, ActionState.SKIPPED}),
    ActionState.COMPLETED: frozenset(),
    ActionState.SKIPPED: frozenset(),
}


def _empty_action_data() -> Dict[str, Any]:
    return {"config": {}, "history": []}


class InstanceStep(BaseModel):
    """
    Runtime state of a step within a workflow instance.

    Maps to: caseflow.workflow_instance_steps
    Primary Key: step_id
    """
    step_id: StepId = Field(default_factory=new_step_id, max_length=64)
    instance_id: str = Field(..., max_length=64)
    template_order: StepOrder = Field(..., ge=0)

    title: str
    description: Optional[str] = None
    action_type: ActionType = ActionType.TASK
    role_scope: RoleScope = RoleScope.LAWYER
    required: bool = True

    action_state: ActionState = Field(default=ActionState.PENDING)

    depends_on: List[StepId] = Field(default_factory=list)
    dependency_logic: DependencyLogic = DependencyLogic.ALL
    condition_type: ConditionType = ConditionType.ALWAYS
    condition_config: Optional[StoredConditionConfig] = None

    assigned_to: Optional[str] = None
    notes: Optional[str] = None
    action_data: Dict[str, Any] = Field(default_factory=_empty_action_data)

    # Timestamps
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=_utcnow)

    # Optimistic locking
    version: int = Field(
        default=1,
        ge=1,
        description="Version for optimistic locking - incremented on each update"
    )

    @field_validator("action_data", mode="before")
    @classmethod
    def ensure_action_data_shape(cls, v):
        data = dict(v or {})
        data.setdefault("config", {})
        data.setdefault("history", [])
        return data

    @computed_field
    @property
    def is_terminal(self) -> bool:
        """Check if step is in a terminal state."""
        return self.action_state.is_terminal()

    @property
    def history(self) -> List[Dict[str, Any]]:
        return self.action_data["history"]

    def can_transition_to(self, new_state: ActionState) -> bool:
        """
        Validate if a state transition is allowed.

        Valid transitions:
            PENDING -> READY, SKIPPED
            READY -> IN_PROGRESS, SKIPPED
            IN_PROGRESS -> COMPLETED, SKIPPED
            COMPLETED, SKIPPED -> (none, terminal)
        """
        return new_state in STEP_TRANSITIONS.get(self.action_state, frozenset())

    def ensure_can_transition(self, new_state: ActionState) -> None:
        """Raise WorkflowTransitionError unless can_transition_to(new_state)."""
        if not self.can_transition_to(new_state):
            raise WorkflowTransitionError(
                f"Transition from {self.action_state.value} to {new_state.value} "
                f"is not permitted for step {self.step_id}"
            )

    def _transition(self, new_state: ActionState) -> datetime:
        self.ensure_can_transition(new_state)
        now = _utcnow()
        self.action_state = new_state
        self.updated_at = now
        return now

    def record_event(
        self,
        event: str,
        by: Optional[str] = None,
        payload: Optional[Any] = None,
        at: Optional[datetime] = None,
    ) -> None:
        """Append an entry to action_data.history."""
        entry: Dict[str, Any] = {
            "at": (at or _utcnow()).isoformat(),
            "by": by,
            "event": event,
        }
        if payload is not None:
            entry["payload"] = payload
        self.history.append(entry)

    def mark_ready(self, by: Optional[str] = None) -> None:
        """Mark step as ready (dependencies met, condition holds)."""
        now = self._transition(ActionState.READY)
        self.record_event("READY", by=by, at=now)

    def mark_started(self, by: Optional[str] = None) -> None:
        """Mark step as in progress."""
        now = self._transition(ActionState.IN_PROGRESS)
        self.started_at = now
        if by and not self.assigned_to:
            self.assigned_to = by
        self.record_event("STARTED", by=by, at=now)

    def mark_completed(self, by: Optional[str] = None, payload: Optional[Any] = None) -> None:
        """Mark step as completed."""
        now = self._transition(ActionState.COMPLETED)
        self.completed_at = now
        self.record_event("COMPLETED", by=by, payload=payload, at=now)

    def mark_skipped(
        self,
        by: Optional[str] = None,
        note: Optional[str] = None,
        payload: Optional[Any] = None,
    ) -> None:
        """Mark step as skipped (condition not met, or skipped by an admin)."""
        now = self._transition(ActionState.SKIPPED)
        self.completed_at = now
        if note:
            self.notes = note
        self.record_event("SKIPPED", by=by, payload=payload, at=now)


class WorkflowInstance(BaseModel):
    """
    One run of a template against a case.

    Maps to: caseflow.workflow_instances
    Primary Key: instance_id
    """
    instance_id: str = Field(default_factory=new_instance_id, max_length=64)
    template_id: str = Field(..., max_length=64)
    template_version: int = Field(..., ge=1)
    case_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Matter or contact the workflow runs against"
    )

    status: InstanceStatus = Field(default=InstanceStatus.ACTIVE)
    context: Dict[str, Any] = Field(default_factory=dict)

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    version: int = Field(default=1, ge=1)

    @computed_field
    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def mark_completed(self) -> None:
        if self.status != InstanceStatus.ACTIVE:
            raise WorkflowTransitionError(
                f"Instance {self.instance_id} is {self.status.value}, cannot complete"
            )
        now = _utcnow()
        self.status = InstanceStatus.COMPLETED
        self.completed_at = now
        self.updated_at = now

    def mark_cancelled(self) -> None:
        if self.status != InstanceStatus.ACTIVE:
            raise WorkflowTransitionError(
                f"Instance {self.instance_id} is {self.status.value}, cannot cancel"
            )
        now = _utcnow()
        self.status = InstanceStatus.CANCELLED
        self.completed_at = now
        self.updated_at = now


def materialize_instance_steps(
    template: WorkflowTemplate,
    instance_id: str,
) -> List[InstanceStep]:
    """
    Copy template steps into PENDING instance steps.

    Order references become step-id references. The template must already
    have passed validation; an order that does not resolve raises.

    Args:
        template: Validated template
        instance_id: Owning instance

    Returns:
        Instance steps sorted by template order
    """
    ordered = template.ordered_steps()
    id_by_order: Dict[StepOrder, StepId] = {step.order: new_step_id() for step in ordered}

    steps: List[InstanceStep] = []
    for tstep in ordered:
        unresolved = [o for o in tstep.depends_on if o not in id_by_order]
        if unresolved:
            raise WorkflowValidationError([
                ValidationIssue(
                    field="depends_on",
                    message=f"Invalid dependency reference: Step {o} does not exist",
                    step_order=tstep.order,
                )
                for o in unresolved
            ])

        steps.append(InstanceStep(
            step_id=id_by_order[tstep.order],
            instance_id=instance_id,
            template_order=tstep.order,
            title=tstep.title,
            description=tstep.description,
            action_type=tstep.action_type,
            role_scope=tstep.role_scope,
            required=tstep.required,
            depends_on=[id_by_order[o] for o in tstep.depends_on],
            dependency_logic=tstep.dependency_logic,
            condition_type=tstep.condition_type,
            condition_config=(
                tstep.condition_config.model_copy(deep=True)
                if tstep.condition_config is not None else None
            ),
            action_data={"config": dict(tstep.action_config), "history": []},
        ))

    return steps


__all__ = [
    "STEP_TRANSITIONS",
    "InstanceStep",
    "WorkflowInstance",
    "materialize_instance_steps",
    "new_instance_id",
    "new_step_id",
]

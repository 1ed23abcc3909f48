# ============================================================================
# STEP SCHEDULER
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Next-step determination
# PURPOSE: Given step states and context, decide which steps activate or skip
# CREATED: 12 OCT 2026
# ============================================================================
"""
Step Scheduler

Pure function of (steps, context) -> SchedulingResult.

For every PENDING step, in template order:
    dependencies unsatisfied       -> stays PENDING
    satisfied, condition holds     -> READY (+ notification)
    satisfied, condition fails     -> SKIPPED (with a note)
    satisfied, evaluation error    -> stays PENDING, recorded as deferred

Changes are applied to a working copy while walking, so a step decided
earlier in the pass is visible to later steps. Inputs are deep-copied
and never mutated.

Hard errors (CUSTOM dependency logic, references that do not resolve)
propagate and abort the pass; the caller's transaction rolls back.

Persisting the result, completing the instance and sending
notifications belong to services.instance_service.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.contracts import ActionState, ActionType, ConditionType, RoleScope, StepId
from core.errors import ConditionEvaluationError
from core.logging import log_checkpoint, log_context
from core.models import InstanceStep, WorkflowInstance
from orchestrator.engine.conditions import ConditionEvaluator, get_condition_evaluator
from orchestrator.engine.dependencies import DependencyEvaluator, index_steps

logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class StepTransition:
    """A state change decided by the scheduler."""
    step_id: StepId
    from_state: ActionState
    to_state: ActionState
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "note": self.note,
        }


@dataclass
class StepReadyNotification:
    """Tells the assignee (or role) that a step can be worked on."""
    instance_id: str
    step_id: StepId
    title: str
    action_type: ActionType
    role_scope: RoleScope
    assigned_to: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "step.ready",
            "instance_id": self.instance_id,
            "step_id": self.step_id,
            "title": self.title,
            "action_type": self.action_type.value,
            "role_scope": self.role_scope.value,
            "assigned_to": self.assigned_to,
        }


@dataclass
class DeferredStep:
    """A step left PENDING because its condition could not be evaluated."""
    step_id: StepId
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"step_id": self.step_id, "reason": self.reason}


@dataclass
class SchedulingResult:
    """Result of one scheduler pass."""
    steps: List[InstanceStep] = field(default_factory=list)
    transitions: List[StepTransition] = field(default_factory=list)
    notifications: List[StepReadyNotification] = field(default_factory=list)
    deferred: List[DeferredStep] = field(default_factory=list)

    @property
    def activated_count(self) -> int:
        return sum(1 for t in self.transitions if t.to_state == ActionState.READY)

    @property
    def skipped_count(self) -> int:
        return sum(1 for t in self.transitions if t.to_state == ActionState.SKIPPED)

    @property
    def all_terminal(self) -> bool:
        return bool(self.steps) and all(s.action_state.is_terminal() for s in self.steps)

    @property
    def changed_steps(self) -> List[InstanceStep]:
        changed = {t.step_id for t in self.transitions}
        return [s for s in self.steps if s.step_id in changed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activated_count": self.activated_count,
            "skipped_count": self.skipped_count,
            "all_terminal": self.all_terminal,
            "transitions": [t.to_dict() for t in self.transitions],
            "deferred": [d.to_dict() for d in self.deferred],
        }


def skip_note(condition_type: str, value: bool) -> str:
    return f"Skipped: Condition not met ({condition_type}, evaluated to {str(value).lower()})"


# ============================================================================
# SCHEDULER
# ============================================================================

class StepScheduler:
    """Determines the next steps of an instance."""

    def __init__(
        self,
        dependency_evaluator: Optional[DependencyEvaluator] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.dependencies = dependency_evaluator or DependencyEvaluator()
        self.conditions = condition_evaluator or get_condition_evaluator()

    def determine_next_steps(
        self,
        steps: Sequence[InstanceStep],
        context: Mapping[str, Any],
        instance: Optional[WorkflowInstance] = None,
    ) -> SchedulingResult:
        """
        Run one scheduler pass.

        Args:
            steps: All steps of the instance
            context: Instance context (snapshot taken here)
            instance: Owning instance, exposed to conditions as
                      workflow.instance.*

        Returns:
            SchedulingResult with the updated working copy of the steps

        Raises:
            InvalidDependencyError: A dependency does not resolve
            UnsupportedDependencyLogicError: A step uses CUSTOM logic
        """
        started = time.time()
        snapshot = copy.deepcopy(dict(context))
        working = [step.model_copy(deep=True) for step in steps]
        working.sort(key=lambda s: s.template_order)
        index = index_steps(working)

        result = SchedulingResult(steps=working)
        instance_id = instance.instance_id if instance else (working[0].instance_id if working else None)

        with log_context(instance_id=instance_id, operation="determine_next_steps"):
            for step in working:
                if step.action_state != ActionState.PENDING:
                    continue

                if not self.dependencies.is_satisfied(step, working, index):
                    continue

                try:
                    activate = self.conditions.check_step_condition(step, snapshot, instance)
                except ConditionEvaluationError as e:
                    logger.warning(
                        f"Condition evaluation failed for step {step.step_id} "
                        f"of instance {step.instance_id}: {e.message}"
                    )
                    result.deferred.append(DeferredStep(step_id=step.step_id, reason=e.message))
                    continue

                if activate:
                    step.mark_ready()
                    result.transitions.append(StepTransition(
                        step_id=step.step_id,
                        from_state=ActionState.PENDING,
                        to_state=ActionState.READY,
                    ))
                    result.notifications.append(StepReadyNotification(
                        instance_id=step.instance_id,
                        step_id=step.step_id,
                        title=step.title,
                        action_type=step.action_type,
                        role_scope=step.role_scope,
                        assigned_to=step.assigned_to,
                    ))
                    logger.info(f"Step {step.step_id} ({step.title}) is READY")
                else:
                    # check_step only returns False for IF_TRUE / IF_FALSE
                    evaluated = step.condition_type == ConditionType.IF_FALSE
                    note = skip_note(step.condition_type.value, evaluated)
                    step.mark_skipped(note=note)
                    result.transitions.append(StepTransition(
                        step_id=step.step_id,
                        from_state=ActionState.PENDING,
                        to_state=ActionState.SKIPPED,
                        note=note,
                    ))
                    logger.info(f"Step {step.step_id} ({step.title}) SKIPPED: {note}")

            duration_ms = (time.time() - started) * 1000
            log_checkpoint("scheduler_pass_completed", {
                "activated": result.activated_count,
                "skipped": result.skipped_count,
                "deferred": len(result.deferred),
                "all_terminal": result.all_terminal,
                "duration_ms": round(duration_ms, 2),
            }, logger=logger)

        return result


# ============================================================================
# SINGLETON
# ============================================================================

_scheduler: Optional[StepScheduler] = None


def get_scheduler() -> StepScheduler:
    """Get the shared scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = StepScheduler()
    return _scheduler


def reset_scheduler() -> None:
    """Reset the shared scheduler (for testing)."""
    global _scheduler
    _scheduler = None


__all__ = [
    "StepTransition",
    "StepReadyNotification",
    "DeferredStep",
    "SchedulingResult",
    "StepScheduler",
    "get_scheduler",
    "reset_scheduler",
    "skip_note",
]

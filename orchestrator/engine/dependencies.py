# ============================================================================
# DEPENDENCY EVALUATOR
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - ALL/ANY dependency satisfaction
# PURPOSE: Decide whether a step's predecessors allow it to run
# CREATED: 12 OCT 2026
# ============================================================================
"""
Dependency Evaluator

Applies a step's dependency logic to the states of its predecessors:

- No dependencies: satisfied
- ALL: every predecessor is COMPLETED
- ANY: at least one predecessor is COMPLETED
- CUSTOM: raises UnsupportedDependencyLogicError

A SKIPPED predecessor does not count unless
SchedulerDefaults.skipped_satisfies_dependencies is enabled.

A depends_on entry that does not resolve to a step of the instance is a
data-integrity problem and raises InvalidDependencyError.

The evaluator is stateless - it reads steps and never mutates them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence

from core.config import get_defaults
from core.contracts import ActionState, DependencyLogic, StepId
from core.errors import DependencyError, InvalidDependencyError, UnsupportedDependencyLogicError
from core.models import InstanceStep

logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class PendingDependency:
    """A predecessor that does not yet satisfy its dependent."""
    step_id: StepId
    title: str
    state: ActionState

    def to_dict(self) -> Dict[str, Any]:
        return {"step_id": self.step_id, "title": self.title, "state": self.state.value}


@dataclass
class DependencyStatus:
    """Dependency report for a single step."""
    step_id: StepId
    step_title: str
    is_satisfied: bool
    dependency_count: int
    completed_count: int
    logic: DependencyLogic
    pending_dependencies: List[PendingDependency] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_title": self.step_title,
            "is_satisfied": self.is_satisfied,
            "dependency_count": self.dependency_count,
            "completed_count": self.completed_count,
            "pending_dependencies": [p.to_dict() for p in self.pending_dependencies],
            "logic": self.logic.value,
            "error": self.error,
        }


def index_steps(steps: Sequence[InstanceStep]) -> Dict[StepId, InstanceStep]:
    return {step.step_id: step for step in steps}


# ============================================================================
# EVALUATOR
# ============================================================================

class DependencyEvaluator:
    """Evaluates ALL/ANY dependency logic over instance steps."""

    def __init__(self, skipped_satisfies_dependencies: Optional[bool] = None):
        if skipped_satisfies_dependencies is None:
            skipped_satisfies_dependencies = get_defaults().scheduler.skipped_satisfies_dependencies
        self.skipped_satisfies_dependencies = skipped_satisfies_dependencies

    @property
    def satisfying_states(self) -> FrozenSet[ActionState]:
        if self.skipped_satisfies_dependencies:
            return frozenset({ActionState.COMPLETED, ActionState.SKIPPED})
        return frozenset({ActionState.COMPLETED})

    def resolve_dependencies(
        self,
        step: InstanceStep,
        index: Mapping[StepId, InstanceStep],
    ) -> List[InstanceStep]:
        """
        Look up a step's predecessors.

        Raises:
            InvalidDependencyError: If any reference does not resolve
        """
        missing = [dep for dep in step.depends_on if dep not in index]
        if missing:
            raise InvalidDependencyError(step.step_id, missing)
        return [index[dep] for dep in step.depends_on]

    def is_satisfied(
        self,
        step: InstanceStep,
        steps: Sequence[InstanceStep],
        index: Optional[Mapping[StepId, InstanceStep]] = None,
    ) -> bool:
        """
        Check if a step's dependencies are satisfied.

        Args:
            step: Step to check
            steps: All steps of the instance
            index: Optional prebuilt step_id -> step map

        Returns:
            True if the step may run as far as its predecessors are concerned

        Raises:
            InvalidDependencyError: If a dependency does not resolve
            UnsupportedDependencyLogicError: For CUSTOM logic
        """
        if not step.depends_on:
            return True

        if index is None:
            index = index_steps(steps)

        predecessors = self.resolve_dependencies(step, index)
        done = sum(1 for dep in predecessors if dep.action_state in self.satisfying_states)

        if step.dependency_logic == DependencyLogic.ALL:
            return done == len(predecessors)

        if step.dependency_logic == DependencyLogic.ANY:
            return done > 0

        raise UnsupportedDependencyLogicError(step.step_id, step.dependency_logic.value)

    def get_ready_steps(self, steps: Sequence[InstanceStep]) -> List[InstanceStep]:
        """
        Steps whose dependencies are satisfied and that have not started.

        Terminal and IN_PROGRESS steps are excluded. A step whose check
        fails is logged and excluded.
        """
        index = index_steps(steps)
        ready = []
        for step in steps:
            if step.action_state.is_terminal() or step.action_state == ActionState.IN_PROGRESS:
                continue
            try:
                if self.is_satisfied(step, steps, index):
                    ready.append(step)
            except DependencyError as e:
                logger.error(f"Error checking dependencies for step {step.step_id}: {e}")
        return ready

    def get_blocked_steps(self, steps: Sequence[InstanceStep]) -> List[InstanceStep]:
        """
        PENDING steps waiting on unsatisfied dependencies.

        A step whose check fails is logged and counted as blocked.
        """
        index = index_steps(steps)
        blocked = []
        for step in steps:
            if step.action_state != ActionState.PENDING:
                continue
            try:
                if not self.is_satisfied(step, steps, index):
                    blocked.append(step)
            except DependencyError as e:
                logger.error(f"Error checking dependencies for step {step.step_id}: {e}")
                blocked.append(step)
        return blocked

    def get_dependency_status(
        self,
        step: InstanceStep,
        steps: Sequence[InstanceStep],
    ) -> DependencyStatus:
        """Detailed dependency report for one step. Never raises."""
        if not step.depends_on:
            return DependencyStatus(
                step_id=step.step_id,
                step_title=step.title,
                is_satisfied=True,
                dependency_count=0,
                completed_count=0,
                logic=step.dependency_logic,
            )

        index = index_steps(steps)
        predecessors = [index[dep] for dep in step.depends_on if dep in index]
        done = [dep for dep in predecessors if dep.action_state in self.satisfying_states]
        pending = [dep for dep in predecessors if dep.action_state not in self.satisfying_states]

        error = None
        try:
            satisfied = self.is_satisfied(step, steps, index)
        except DependencyError as e:
            satisfied = False
            error = e.message

        return DependencyStatus(
            step_id=step.step_id,
            step_title=step.title,
            is_satisfied=satisfied,
            dependency_count=len(predecessors),
            completed_count=len(done),
            logic=step.dependency_logic,
            pending_dependencies=[
                PendingDependency(step_id=dep.step_id, title=dep.title, state=dep.action_state)
                for dep in pending
            ],
            error=error,
        )


__all__ = [
    "PendingDependency",
    "DependencyStatus",
    "DependencyEvaluator",
    "index_steps",
]

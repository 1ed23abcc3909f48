# ============================================================================
# TEMPLATE VALIDATION
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Authoring-time policy
# PURPOSE: Reject step graphs and condition configs that are not well-formed
# CREATED: 12 OCT 2026
# ============================================================================
"""
Template Validation

Runs when a template is created, updated or published. Collects every
problem instead of stopping at the first:

- duplicate step order
- self-dependency
- duplicate depends_on entries
- reference to an order that does not exist
- forward reference (dependency order >= own order)
- dependency cycles
- condition configuration that does not match the condition type
- action_config rejected by the action type's handler

Issues are ValidationIssue records; validate_or_raise() turns them into a
WorkflowValidationError (HTTP 422).
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from core.contracts import ConditionType, StepOrder
from core.errors import (
    ActionHandlerError,
    ActionRegistryError,
    ValidationIssue,
    WorkflowValidationError,
    format_loc,
)
from core.models import (
    AlwaysCondition,
    CompoundCondition,
    SimpleCondition,
    SwitchCondition,
    TemplateStep,
)
from handlers import ActionRegistry, get_action_registry
from orchestrator.engine.graph import CycleDetector, GraphBuilder

logger = logging.getLogger(__name__)


def _depends_field(order: StepOrder) -> str:
    return f"steps[{order}].depends_on"


class TemplateValidator:
    """Authoring-time checks for a template's steps."""

    def __init__(self, registry: Optional[ActionRegistry] = None):
        self.builder = GraphBuilder()
        self.detector = CycleDetector()
        self.registry = registry or get_action_registry()

    def validate(self, steps: Sequence[TemplateStep]) -> List[ValidationIssue]:
        """
        Validate template steps.

        Returns list of issues (empty if valid).
        """
        issues: List[ValidationIssue] = []
        issues.extend(self._check_orders(steps))
        issues.extend(self._check_dependencies(steps))
        issues.extend(self._check_cycles(steps))
        issues.extend(self._check_conditions(steps))
        issues.extend(self._check_actions(steps))
        return issues

    def validate_or_raise(self, steps: Sequence[TemplateStep]) -> None:
        issues = self.validate(steps)
        if issues:
            logger.info(f"Template rejected with {len(issues)} issue(s)")
            raise WorkflowValidationError(issues)

    # =========================================================================
    # GRAPH CHECKS
    # =========================================================================

    def _check_orders(self, steps: Sequence[TemplateStep]) -> List[ValidationIssue]:
        issues = []
        if not steps:
            issues.append(ValidationIssue(field="steps", message="Template must have at least one step"))
        counts = Counter(step.order for step in steps)
        for order, count in sorted(counts.items()):
            if count > 1:
                issues.append(ValidationIssue(
                    field="steps.order",
                    message=f"Duplicate step order: {order}",
                    step_order=order,
                ))
        return issues

    def _check_dependencies(self, steps: Sequence[TemplateStep]) -> List[ValidationIssue]:
        issues = []
        valid_orders = {step.order for step in steps}

        for step in steps:
            if not step.depends_on:
                continue
            field = _depends_field(step.order)

            if step.order in step.depends_on:
                issues.append(ValidationIssue(
                    field=field,
                    message="Step cannot depend on itself",
                    step_order=step.order,
                ))

            if len(set(step.depends_on)) != len(step.depends_on):
                issues.append(ValidationIssue(
                    field=field,
                    message="Duplicate dependencies detected",
                    step_order=step.order,
                ))

            for dep in step.depends_on:
                if dep not in valid_orders:
                    issues.append(ValidationIssue(
                        field=field,
                        message=f"Invalid dependency reference: Step {dep} does not exist",
                        step_order=step.order,
                    ))

            for dep in step.depends_on:
                # Self-reference and missing steps already reported above
                if dep > step.order and dep in valid_orders:
                    issues.append(ValidationIssue(
                        field=field,
                        message=f"Cannot depend on future step: Step {dep}",
                        step_order=step.order,
                    ))

        return issues

    def _check_cycles(self, steps: Sequence[TemplateStep]) -> List[ValidationIssue]:
        graph = self.builder.build(steps)
        issues = []
        for cycle in self.detector.detect(graph):
            if cycle.is_self_reference:
                continue
            issues.append(ValidationIssue(
                field="steps.depends_on",
                message=f"Circular dependency detected: {cycle.describe(graph.titles)}",
                step_order=cycle.path[0],
            ))
        return issues

    # =========================================================================
    # CONDITION CHECKS
    # =========================================================================

    def _check_conditions(self, steps: Sequence[TemplateStep]) -> List[ValidationIssue]:
        issues = []
        for step in steps:
            field = f"steps[{step.order}].condition_config"
            config = step.condition_config
            ctype = step.condition_type

            if ctype == ConditionType.ALWAYS:
                if config is not None and not isinstance(config, AlwaysCondition):
                    logger.debug(f"Step {step.order}: condition_config ignored for ALWAYS")
                continue

            if config is None:
                issues.append(ValidationIssue(
                    field=field,
                    message=f"Condition type {ctype.value} requires a condition_config",
                    step_order=step.order,
                ))
                continue

            if ctype in (ConditionType.IF_TRUE, ConditionType.IF_FALSE):
                if not isinstance(config, (SimpleCondition, CompoundCondition)):
                    issues.append(ValidationIssue(
                        field=field,
                        message=f"Condition type {ctype.value} requires a simple or compound condition",
                        step_order=step.order,
                    ))
            elif ctype == ConditionType.SWITCH:
                if not isinstance(config, SwitchCondition):
                    issues.append(ValidationIssue(
                        field=field,
                        message="Condition type SWITCH requires a switch condition",
                        step_order=step.order,
                    ))
        return issues

    # =========================================================================
    # ACTION CONFIG CHECKS
    # =========================================================================

    def _check_actions(self, steps: Sequence[TemplateStep]) -> List[ValidationIssue]:
        issues = []
        for step in steps:
            field = f"steps[{step.order}].action_config"
            try:
                self.registry.get(step.action_type).validate_config(step.action_config)
            except ActionRegistryError as e:
                issues.append(ValidationIssue(field=field, message=e.message, step_order=step.order))
            except ActionHandlerError as e:
                for error in e.errors or [{"loc": (), "msg": e.message}]:
                    issues.append(ValidationIssue(
                        field=format_loc(error.get("loc", ()), prefix=field),
                        message=error.get("msg", e.message),
                        step_order=step.order,
                    ))
        return issues


# ============================================================================
# DESCRIPTION
# ============================================================================

def describe_dependencies(steps: Sequence[TemplateStep]) -> str:
    """
    Human-readable summary of the parallel structure.

    Steps that share their first dependency fork from it; steps with more
    than one dependency join.
    """
    groups: Dict[StepOrder, List[StepOrder]] = {}
    for step in sorted(steps, key=lambda s: s.order):
        if step.depends_on:
            groups.setdefault(min(step.depends_on), []).append(step.order)

    descriptions = []
    for _, group in sorted(groups.items()):
        if len(group) > 1:
            joined = ", ".join(str(o) for o in group)
            descriptions.append(f"Steps {joined} execute in parallel (fork pattern)")

    for step in sorted(steps, key=lambda s: s.order):
        if len(step.depends_on) > 1:
            deps = ", ".join(str(o) for o in step.depends_on)
            descriptions.append(f"Step {step.order} waits for steps {deps} (join pattern)")

    if not descriptions:
        return "Sequential execution (no parallelism)"
    return " • ".join(descriptions)


__all__ = ["TemplateValidator", "describe_dependencies"]

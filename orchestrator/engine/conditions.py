# ============================================================================
# CONDITION EVALUATOR
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Step activation condition evaluation
# PURPOSE: Decide whether a step's condition holds against the instance context
# CREATED: 12 OCT 2026
# ============================================================================
"""
Condition Evaluator

Evaluates a step's activation condition against the instance context.

Field paths are dotted and resolve against the evaluation namespace:

    {
        "workflow": {"context": <instance context>, "instance": {...}},
        "step": {"data": <action_data>, "order": 3, "action_type": "TASK", ...},
    }

A path whose first segment is neither "workflow" nor "step" resolves
directly against the instance context, so "approved" and
"workflow.context.approved" are the same field. Numeric segments index
into lists. Missing segments resolve to None.

The evaluator is pure: it never mutates the context it is given.
"""

import logging
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from core.contracts import CompoundLogic, ConditionOperator, ConditionType
from core.errors import ConditionEvaluationError, ConditionValidationError, WorkflowError
from core.models import (
    AlwaysCondition,
    CompoundCondition,
    ConditionConfig,
    InstanceStep,
    InvalidCondition,
    SimpleCondition,
    SwitchCondition,
    WorkflowInstance,
    parse_condition_config,
)

logger = logging.getLogger(__name__)

NAMESPACE_ROOTS = ("workflow", "step")


@dataclass
class ConditionResult:
    """Outcome of a non-raising evaluation."""
    success: bool
    value: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "value": self.value}
        if self.error is not None:
            result["error"] = self.error
        return result


# ============================================================================
# OPERATORS
# ============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    # True == 1 in Python; a boolean only equals another boolean here
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    return left == right


def _numeric(op: Callable[[Any, Any], bool], symbol: str) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        if not (_is_number(left) and _is_number(right)):
            raise TypeError(f"Operator '{symbol}' requires numeric values")
        return op(left, right)
    return compare


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, list):
        return any(_strict_equals(item, right) for item in left)
    return _as_text(right) in _as_text(left)


def _member_of(left: Any, right: Any, symbol: str) -> bool:
    if not isinstance(right, list):
        raise TypeError(f"Operator '{symbol}' requires a list as comparison value")
    return any(_strict_equals(left, item) for item in right)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return False


class ConditionEvaluator:
    """
    Evaluates simple and compound conditions.

    Supports:
    - Equality: ==, != (strict, booleans never equal numbers)
    - Numeric comparison: >, <, >=, <= (numbers only)
    - String: contains, startsWith, endsWith
    - Membership: in, notIn (comparison value must be a list)
    - Existence: exists, notExists, isEmpty, isNotEmpty
    """

    OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
        ConditionOperator.EQ: _strict_equals,
        ConditionOperator.NE: lambda a, b: not _strict_equals(a, b),
        ConditionOperator.GT: _numeric(operator.gt, ">"),
        ConditionOperator.LT: _numeric(operator.lt, "<"),
        ConditionOperator.GE: _numeric(operator.ge, ">="),
        ConditionOperator.LE: _numeric(operator.le, "<="),
        ConditionOperator.CONTAINS: _contains,
        ConditionOperator.STARTS_WITH: lambda a, b: _as_text(a).startswith(_as_text(b)),
        ConditionOperator.ENDS_WITH: lambda a, b: _as_text(a).endswith(_as_text(b)),
        ConditionOperator.IN: lambda a, b: _member_of(a, b, "in"),
        ConditionOperator.NOT_IN: lambda a, b: not _member_of(a, b, "notIn"),
        ConditionOperator.EXISTS: lambda a, _: a is not None,
        ConditionOperator.NOT_EXISTS: lambda a, _: a is None,
        ConditionOperator.IS_EMPTY: lambda a, _: _is_empty(a),
        ConditionOperator.IS_NOT_EMPTY: lambda a, _: not _is_empty(a),
    }

    # =========================================================================
    # NAMESPACE
    # =========================================================================

    @staticmethod
    def build_namespace(
        context: Mapping[str, Any],
        step: Optional[InstanceStep] = None,
        instance: Optional[WorkflowInstance] = None,
    ) -> Dict[str, Any]:
        """Build the evaluation namespace for a step."""
        instance_view: Dict[str, Any] = {}
        if instance is not None:
            instance_view = {
                "id": instance.instance_id,
                "template_id": instance.template_id,
                "template_version": instance.template_version,
                "case_id": instance.case_id,
                "status": instance.status.value,
                "created_at": instance.created_at.isoformat(),
            }

        step_view: Dict[str, Any] = {}
        if step is not None:
            step_view = {
                "id": step.step_id,
                "title": step.title,
                "order": step.template_order,
                "action_type": step.action_type.value,
                "data": step.action_data,
            }

        return {
            "workflow": {"context": context, "instance": instance_view},
            "step": step_view,
        }

    @staticmethod
    def resolve_field(path: str, namespace: Mapping[str, Any]) -> Any:
        """Resolve a dotted path; missing segments give None."""
        parts = path.split(".")
        if parts[0] in NAMESPACE_ROOTS:
            value: Any = namespace
        else:
            value = namespace.get("workflow", {}).get("context", {})

        for part in parts:
            if value is None:
                return None
            if isinstance(value, Mapping):
                value = value.get(part)
            elif isinstance(value, list) and part.lstrip("-").isdigit():
                index = int(part)
                value = value[index] if -len(value) <= index < len(value) else None
            else:
                return None

        return value

    # =========================================================================
    # EVALUATION
    # =========================================================================

    def evaluate(
        self,
        condition: Any,
        context: Mapping[str, Any],
        step: Optional[InstanceStep] = None,
        instance: Optional[WorkflowInstance] = None,
    ) -> bool:
        """
        Evaluate a condition.

        Args:
            condition: Parsed condition model or raw mapping
            context: Instance context
            step: Step the condition belongs to (for "step.*" paths)
            instance: Owning instance (for "workflow.instance.*" paths)

        Returns:
            True if the condition holds

        Raises:
            ConditionValidationError: If a raw mapping cannot be parsed
            ConditionEvaluationError: If evaluation fails
        """
        parsed = parse_condition_config(condition)
        namespace = self.build_namespace(context, step, instance)
        return self._evaluate(parsed, namespace)

    def evaluate_safe(
        self,
        condition: Any,
        context: Mapping[str, Any],
        step: Optional[InstanceStep] = None,
        instance: Optional[WorkflowInstance] = None,
    ) -> ConditionResult:
        """Evaluate without raising; failures are reported in the result."""
        try:
            value = self.evaluate(condition, context, step, instance)
        except WorkflowError as e:
            return ConditionResult(success=False, value=False, error=e.message)
        return ConditionResult(success=True, value=value)

    def _evaluate(self, condition: ConditionConfig, namespace: Mapping[str, Any]) -> bool:
        if isinstance(condition, AlwaysCondition):
            return True

        if isinstance(condition, SimpleCondition):
            return self._evaluate_simple(condition, namespace)

        if isinstance(condition, CompoundCondition):
            # Every branch is evaluated so that an error anywhere surfaces
            results = [self._evaluate(c, namespace) for c in condition.conditions]
            if condition.logic == CompoundLogic.AND:
                return all(results)
            return any(results)

        if isinstance(condition, SwitchCondition):
            raise ConditionEvaluationError("Switch conditions are not supported yet")

        raise ConditionEvaluationError(f"Unknown condition type: {type(condition).__name__}")

    def _evaluate_simple(self, condition: SimpleCondition, namespace: Mapping[str, Any]) -> bool:
        field_value = self.resolve_field(condition.field, namespace)
        op_func = self.OPERATORS[condition.operator]
        try:
            return bool(op_func(field_value, condition.value))
        except (TypeError, ValueError) as e:
            raise ConditionEvaluationError(
                f"Error evaluating operator '{condition.operator.value}' on '{condition.field}': {e}"
            ) from e

    # =========================================================================
    # STEP CONDITIONS
    # =========================================================================

    def check_step(
        self,
        condition_type: ConditionType,
        condition_config: Optional[Any],
        context: Mapping[str, Any],
        step: Optional[InstanceStep] = None,
        instance: Optional[WorkflowInstance] = None,
    ) -> bool:
        """
        Decide whether a step should activate.

        ALWAYS activates. IF_TRUE activates when the condition holds,
        IF_FALSE when it does not.

        Raises:
            ConditionEvaluationError: For SWITCH, a missing or invalid
                config, or a failed evaluation
        """
        if condition_type == ConditionType.ALWAYS:
            return True

        if condition_type == ConditionType.SWITCH:
            raise ConditionEvaluationError("SWITCH conditions are not supported yet")

        if condition_config is None:
            raise ConditionEvaluationError(
                f"{condition_type.value} condition has no condition_config"
            )

        if isinstance(condition_config, InvalidCondition):
            raise ConditionEvaluationError(f"Stored condition is invalid: {condition_config.error}")

        try:
            value = self.evaluate(condition_config, context, step, instance)
        except ConditionValidationError as e:
            raise ConditionEvaluationError(e.message) from e
        if condition_type == ConditionType.IF_TRUE:
            return value
        return not value

    def check_step_condition(
        self,
        step: InstanceStep,
        context: Mapping[str, Any],
        instance: Optional[WorkflowInstance] = None,
    ) -> bool:
        return self.check_step(step.condition_type, step.condition_config, context, step, instance)


# ============================================================================
# SINGLETON
# ============================================================================

_evaluator: Optional[ConditionEvaluator] = None


def get_condition_evaluator() -> ConditionEvaluator:
    """Get the shared evaluator instance."""
    global _evaluator
    if _evaluator is None:
        _evaluator = ConditionEvaluator()
    return _evaluator


__all__ = [
    "ConditionResult",
    "ConditionEvaluator",
    "get_condition_evaluator",
]

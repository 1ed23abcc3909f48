# ============================================================================
# WORKFLOW ERRORS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Authoring-time and runtime errors with HTTP status hints
# CREATED: 12 OCT 2026
# ============================================================================
"""
Workflow Errors

Two classes of failure:

- Authoring-time validation errors (422): rejected template writes.
  Raised before anything is persisted as active.
- Runtime errors: data-integrity problems found while scheduling
  (invalid dependency references, unimplemented dependency logic)
  and condition evaluation failures.
- Action handler errors (422): an action_config or completion payload
  the action type's handler rejects.

Every error carries a status_code so the API layer can map it without
knowing the concrete type.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence


def format_loc(loc: Sequence[Any], prefix: str = "") -> str:
    """Render a pydantic `loc` tuple as `a.b[0].c`, optionally under a prefix."""
    field = prefix
    for part in loc:
        if isinstance(part, int):
            field += f"[{part}]"
        else:
            field += f".{part}" if field else str(part)
    return field


@dataclass
class ValidationIssue:
    """A single authoring problem, addressed to a field of the payload."""
    field: str
    message: str
    step_order: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class WorkflowError(Exception):
    """Base exception for the workflow engine."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


# ============================================================================
# AUTHORING-TIME
# ============================================================================

class WorkflowValidationError(WorkflowError):
    """Template graph or condition configuration is not well-formed."""

    status_code = 422

    def __init__(self, issues: List[ValidationIssue], message: Optional[str] = None):
        self.issues = issues
        if message is None:
            message = "Invalid workflow: " + "; ".join(i.message for i in issues)
        super().__init__(message)

    @classmethod
    def from_errors(cls, errors: Sequence[Mapping[str, Any]]) -> "WorkflowValidationError":
        """
        Build from pydantic-style error dicts (`loc`, `msg`).

        A leading "body" segment is dropped and list indexes render as
        `[n]`, so a bad operator reads `steps[0].condition_config.simple.operator`.
        """
        issues = []
        for error in errors:
            loc = list(error.get("loc", ()))
            if loc and loc[0] == "body":
                loc = loc[1:]
            issues.append(ValidationIssue(field=format_loc(loc) or "body", message=error.get("msg", "invalid")))
        return cls(issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "issues": [issue.to_dict() for issue in self.issues],
        }


class ConditionValidationError(WorkflowError):
    """A condition configuration cannot be parsed."""

    status_code = 422


# ============================================================================
# LOOKUP / LIFECYCLE
# ============================================================================

class WorkflowNotFoundError(WorkflowError):
    status_code = 404


class WorkflowTransitionError(WorkflowError):
    """A step or instance state change is not permitted."""

    status_code = 409


class TemplateNotPublishedError(WorkflowError):
    status_code = 409


# ============================================================================
# RUNTIME
# ============================================================================

class DependencyError(WorkflowError):
    """Dependency data cannot be evaluated (corrupted state)."""

    def __init__(self, message: str, step_id: Optional[str] = None):
        self.step_id = step_id
        super().__init__(message)


class InvalidDependencyError(DependencyError):
    """A depends_on entry does not resolve to a step of the instance."""

    def __init__(self, step_id: str, missing: List[str]):
        self.missing = missing
        super().__init__(
            f"Step {step_id} has invalid dependencies: {', '.join(missing)}",
            step_id=step_id,
        )


class UnsupportedDependencyLogicError(DependencyError):
    """Dependency logic without an implementation (CUSTOM)."""

    def __init__(self, step_id: str, logic: str):
        self.logic = logic
        super().__init__(
            f'Dependency logic "{logic}" is not implemented for step {step_id}',
            step_id=step_id,
        )


class ConditionEvaluationError(WorkflowError):
    """Evaluating a condition failed at runtime."""


# ============================================================================
# ACTION HANDLERS
# ============================================================================

class ActionHandlerError(WorkflowError):
    """
    An action config or completion payload was rejected by its handler.

    `code` is INVALID_CONFIG, INVALID_PAYLOAD or a handler-specific value
    such as MISSING_DOCUMENT. `errors` holds the pydantic error dicts when
    the rejection came from schema validation.
    """

    status_code = 422

    def __init__(
        self,
        message: str,
        code: str = "ACTION_HANDLER_ERROR",
        errors: Optional[Sequence[Mapping[str, Any]]] = None,
    ):
        self.code = code
        self.errors = list(errors or [])
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.errors:
            result["issues"] = [
                {"field": format_loc(e.get("loc", ())), "message": e.get("msg", "invalid")}
                for e in self.errors
            ]
        return result


class ActionRegistryError(WorkflowError):
    """Duplicate registration, or no handler for an action type."""


__all__ = [
    "ValidationIssue",
    "WorkflowError",
    "WorkflowValidationError",
    "ConditionValidationError",
    "WorkflowNotFoundError",
    "WorkflowTransitionError",
    "TemplateNotPublishedError",
    "DependencyError",
    "InvalidDependencyError",
    "UnsupportedDependencyLogicError",
    "ConditionEvaluationError",
    "ActionHandlerError",
    "ActionRegistryError",
    "format_loc",
]

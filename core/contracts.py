# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Foundation - Core enums shared by models, engine and API
# PURPOSE: Define step states, dependency logic and condition vocabularies
# LAST_REVIEWED: 12 OCT 2026
# EXPORTS: ActionState, InstanceStatus, DependencyLogic, ConditionType,
#          ConditionOperator, CompoundLogic, ActionType, RoleScope
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the case workflow engine.

These enums cross every boundary:
- SQL (PostgreSQL, stored as their string values)
- HTTP (FastAPI request/response bodies)
- Python (engine evaluation)

Values are the uppercase wire names used by template authors.
"""

from enum import Enum


# Reference types. Templates reference steps by order, instances by step id.
StepOrder = int
StepId = str


# ============================================================================
# STATUS ENUMS
# ============================================================================

class ActionState(str, Enum):
    """
    Lifecycle of an instance step.

    State transitions:
        PENDING -> READY -> IN_PROGRESS -> COMPLETED
        PENDING -> SKIPPED (condition not met)
        READY, IN_PROGRESS -> SKIPPED (skipped by an admin)
    """
    PENDING = "PENDING"          # Waiting for dependencies
    READY = "READY"              # Dependencies met, condition holds
    IN_PROGRESS = "IN_PROGRESS"  # Assignee is working on it
    COMPLETED = "COMPLETED"      # Finished
    SKIPPED = "SKIPPED"          # Condition not met, or skipped by an admin

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (ActionState.COMPLETED, ActionState.SKIPPED)


class InstanceStatus(str, Enum):
    """
    Workflow instance lifecycle.

    State transitions:
        ACTIVE -> COMPLETED
               -> CANCELLED
    """
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def is_terminal(self) -> bool:
        return self in (InstanceStatus.COMPLETED, InstanceStatus.CANCELLED)


# ============================================================================
# DEPENDENCY / CONDITION VOCABULARY
# ============================================================================

class DependencyLogic(str, Enum):
    """How a step's predecessors combine."""
    ALL = "ALL"          # Every predecessor must be complete
    ANY = "ANY"          # At least one predecessor must be complete
    CUSTOM = "CUSTOM"    # Reserved, evaluation raises


class ConditionType(str, Enum):
    """Activation condition kind attached to a step."""
    ALWAYS = "ALWAYS"
    IF_TRUE = "IF_TRUE"
    IF_FALSE = "IF_FALSE"
    SWITCH = "SWITCH"    # Reserved for multi-branch dispatch


class ConditionOperator(str, Enum):
    """Comparison operators available to simple conditions."""
    # Equality
    EQ = "=="
    NE = "!="
    # Numeric comparison
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    # String operations
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    # Membership
    IN = "in"
    NOT_IN = "notIn"
    # Existence
    EXISTS = "exists"
    NOT_EXISTS = "notExists"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"

    def requires_value(self) -> bool:
        """Existence operators take no comparison value."""
        return self not in (
            ConditionOperator.EXISTS,
            ConditionOperator.NOT_EXISTS,
            ConditionOperator.IS_EMPTY,
            ConditionOperator.IS_NOT_EMPTY,
        )


class CompoundLogic(str, Enum):
    AND = "AND"
    OR = "OR"


# ============================================================================
# STEP DESCRIPTORS
# ============================================================================

class ActionType(str, Enum):
    """What kind of work a step asks for."""
    APPROVAL_LAWYER = "APPROVAL_LAWYER"
    SIGNATURE_CLIENT = "SIGNATURE_CLIENT"
    REQUEST_DOC_CLIENT = "REQUEST_DOC_CLIENT"
    PAYMENT_CLIENT = "PAYMENT_CLIENT"
    CHECKLIST = "CHECKLIST"
    WRITE_TEXT = "WRITE_TEXT"
    POPULATE_QUESTIONNAIRE = "POPULATE_QUESTIONNAIRE"
    TASK = "TASK"


class RoleScope(str, Enum):
    """Which role is expected to act on a step."""
    ADMIN = "ADMIN"
    LAWYER = "LAWYER"
    PARALEGAL = "PARALEGAL"
    CLIENT = "CLIENT"

# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Engine components
# PURPOSE: Graph building, cycle detection, conditions, dependencies, scheduling
# CREATED: 12 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- graph: dependency graph construction and cycle detection
- conditions: step activation condition evaluation
- dependencies: ALL/ANY dependency satisfaction
- scheduler: next-step determination
- validation: authoring-time template checks
"""

from orchestrator.engine.graph import (
    Cycle,
    CycleDetector,
    DependencyGraph,
    GraphBuilder,
)
from orchestrator.engine.conditions import (
    ConditionEvaluator,
    ConditionResult,
    get_condition_evaluator,
)
from orchestrator.engine.dependencies import (
    DependencyEvaluator,
    DependencyStatus,
    PendingDependency,
)
from orchestrator.engine.scheduler import (
    DeferredStep,
    SchedulingResult,
    StepReadyNotification,
    StepScheduler,
    StepTransition,
    get_scheduler,
    reset_scheduler,
)
from orchestrator.engine.validation import TemplateValidator, describe_dependencies

__all__ = [
    # Graph
    "Cycle",
    "CycleDetector",
    "DependencyGraph",
    "GraphBuilder",
    # Conditions
    "ConditionEvaluator",
    "ConditionResult",
    "get_condition_evaluator",
    # Dependencies
    "DependencyEvaluator",
    "DependencyStatus",
    "PendingDependency",
    # Scheduler
    "DeferredStep",
    "SchedulingResult",
    "StepReadyNotification",
    "StepScheduler",
    "StepTransition",
    "get_scheduler",
    "reset_scheduler",
    # Validation
    "TemplateValidator",
    "describe_dependencies",
]

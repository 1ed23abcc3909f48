# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Workflow dependency-and-condition engine
# PURPOSE: Validate step graphs and decide which steps run next
# CREATED: 12 OCT 2026
# ============================================================================
"""
Orchestrator Module

The engine has no loop of its own. It is invoked synchronously by the
instance service after every step change.

Usage:
    from orchestrator.engine import get_scheduler

    result = get_scheduler().determine_next_steps(steps, instance.context, instance)
"""

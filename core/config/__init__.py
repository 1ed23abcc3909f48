# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 12 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the workflow engine.
"""

from core.config.defaults import (
    DatabaseDefaults,
    SchedulerDefaults,
    NotificationDefaults,
    TemplateDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "DatabaseDefaults",
    "SchedulerDefaults",
    "NotificationDefaults",
    "TemplateDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]

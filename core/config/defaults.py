# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for database, scheduling, notifications
# CREATED: 12 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for the workflow engine and its collaborators.
These can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from core.contracts import DependencyLogic


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DatabaseDefaults:
    """
    Defaults for the PostgreSQL connection pool.
    """
    schema: str = "caseflow"
    pool_min_size: int = 2
    pool_max_size: int = 10
    ensure_schema_on_startup: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseDefaults":
        """Create from environment variables."""
        return cls(
            schema=os.getenv("WORKFLOW_DB_SCHEMA", "caseflow"),
            pool_min_size=int(os.getenv("DB_POOL_MIN_SIZE", 2)),
            pool_max_size=int(os.getenv("DB_POOL_MAX_SIZE", 10)),
            ensure_schema_on_startup=_env_bool("WORKFLOW_ENSURE_SCHEMA", False),
        )


@dataclass(frozen=True)
class SchedulerDefaults:
    """
    Defaults for the step scheduler.

    skipped_satisfies_dependencies: when true, a SKIPPED predecessor counts
    toward ALL/ANY like a COMPLETED one. Off by default, so a branch that
    was skipped never unblocks its own successors.
    """
    skipped_satisfies_dependencies: bool = False
    default_dependency_logic: str = DependencyLogic.ALL.value

    @classmethod
    def from_env(cls) -> "SchedulerDefaults":
        """Create from environment variables."""
        return cls(
            skipped_satisfies_dependencies=_env_bool(
                "WORKFLOW_SKIPPED_SATISFIES_DEPENDENCIES", False
            ),
            default_dependency_logic=os.getenv(
                "WORKFLOW_DEFAULT_DEPENDENCY_LOGIC", DependencyLogic.ALL.value
            ).upper(),
        )


@dataclass(frozen=True)
class NotificationDefaults:
    """
    Defaults for step-ready notifications.

    With no webhook_url configured, notifications are only logged.
    """
    webhook_url: Optional[str] = None
    timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "NotificationDefaults":
        """Create from environment variables."""
        return cls(
            webhook_url=os.getenv("WORKFLOW_NOTIFICATION_WEBHOOK_URL") or None,
            timeout_seconds=float(os.getenv("WORKFLOW_NOTIFICATION_TIMEOUT", 5.0)),
        )


@dataclass(frozen=True)
class TemplateDefaults:
    """
    Defaults for seed template loading.
    """
    templates_dir: str = "./templates"
    load_on_startup: bool = False

    @classmethod
    def from_env(cls) -> "TemplateDefaults":
        """Create from environment variables."""
        return cls(
            templates_dir=os.getenv("WORKFLOW_TEMPLATES_DIR", "./templates"),
            load_on_startup=_env_bool("WORKFLOW_LOAD_TEMPLATES", False),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    database: DatabaseDefaults = field(default_factory=DatabaseDefaults)
    scheduler: SchedulerDefaults = field(default_factory=SchedulerDefaults)
    notifications: NotificationDefaults = field(default_factory=NotificationDefaults)
    templates: TemplateDefaults = field(default_factory=TemplateDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            database=DatabaseDefaults.from_env(),
            scheduler=SchedulerDefaults.from_env(),
            notifications=NotificationDefaults.from_env(),
            templates=TemplateDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DatabaseDefaults",
    "SchedulerDefaults",
    "NotificationDefaults",
    "TemplateDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]

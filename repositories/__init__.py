# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Database access layer
# PURPOSE: CRUD operations for templates, instances and steps
# CREATED: 12 OCT 2026
# ============================================================================
"""
Repositories Module

Provides database access for workflow templates and instances.
Uses psycopg3 async with connection pooling.

Usage:
    from repositories import init_pool, TemplateRepository, InstanceRepository

    pool = await init_pool()
    instance_repo = InstanceRepository(pool)
    instance = await instance_repo.get(instance_id)
"""

from .database import init_pool, get_pool, close_pool, get_connection, get_connection_string, transaction
from .base import AsyncBaseRepository, RepositoryError, ConcurrentModificationError
from .schema import build_ddl, ensure_schema
from .template_repo import TemplateRepository
from .instance_repo import InstanceRepository

__all__ = [
    "init_pool",
    "get_pool",
    "close_pool",
    "get_connection",
    "get_connection_string",
    "transaction",
    "AsyncBaseRepository",
    "RepositoryError",
    "ConcurrentModificationError",
    "build_ddl",
    "ensure_schema",
    "TemplateRepository",
    "InstanceRepository",
]

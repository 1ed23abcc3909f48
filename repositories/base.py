# ============================================================================
# BASE REPOSITORY - ERROR HANDLING AND CONNECTION PATTERNS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Infrastructure - Base repository patterns
# PURPOSE: Common error handling, connection sharing and logging
# CREATED: 12 OCT 2026
# ============================================================================
"""
Base Repository Patterns

Every repository method takes an optional `conn`. When given, the method
runs on that connection (and inside whatever transaction the caller has
open); otherwise it borrows a connection from the pool for the call.
This is how a step update and the scheduler pass that follows it share
one transaction.
"""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Optional

from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

from core.errors import WorkflowError


class RepositoryError(WorkflowError):
    """Base exception for repository operations."""

    status_code = 500

    def __init__(self, message: str, operation: Optional[str] = None, entity_id: Optional[str] = None):
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(message)


class ConcurrentModificationError(RepositoryError):
    """Optimistic lock failed: the row changed since it was read."""

    status_code = 409


class AsyncBaseRepository:
    """
    Base for psycopg3 repositories.

    Provides:
    - Optional connection sharing for caller-owned transactions
    - Error context manager for consistent error handling
    """

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool
        self.logger = logging.getLogger(self.__class__.__name__)

    @asynccontextmanager
    async def _connection(self, conn: Optional[AsyncConnection] = None):
        """Yield the caller's connection, or borrow one from the pool."""
        if conn is not None:
            yield conn
            return
        async with self.pool.connection() as pooled:
            yield pooled

    @contextmanager
    def _error_context(self, operation: str, entity_id: Optional[str] = None):
        """
        Wrap driver failures in RepositoryError.

        Workflow errors raised inside the block already carry context and
        pass through unchanged.

        Example:
            with self._error_context("instance creation", instance.instance_id):
                await cur.execute(...)
        """
        try:
            yield
        except WorkflowError:
            raise
        except Exception as e:
            error_msg = f"{operation} failed"
            if entity_id:
                error_msg += f" for {entity_id}"
            error_msg += f": {e}"
            self.logger.error(error_msg)
            raise RepositoryError(error_msg, operation=operation, entity_id=entity_id) from e


__all__ = ["RepositoryError", "ConcurrentModificationError", "AsyncBaseRepository"]

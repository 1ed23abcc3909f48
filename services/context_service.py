# ============================================================================
# CONTEXT SERVICE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Service - Instance context store
# PURPOSE: Read and mutate the shared key/value context of an instance
# CREATED: 12 OCT 2026
# ============================================================================
"""
Context Service

The context is a free-form JSON object on the instance row. Conditions
read it; step completions and operators write it.

Every mutation locks the instance row (SELECT ... FOR UPDATE), applies
the change to a copy and writes it back with the instance version check.
Pass `conn` to join a transaction the caller already holds (this is how
complete_step merges context updates in the same transaction as the
step change).

Editing the context does not run the scheduler. POST .../advance does.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

from core.errors import WorkflowNotFoundError
from repositories import ConcurrentModificationError, InstanceRepository, transaction

logger = logging.getLogger(__name__)

Context = Dict[str, Any]


class ContextService:
    """Service for workflow instance context."""

    def __init__(
        self,
        pool: AsyncConnectionPool,
        instance_repo: Optional[InstanceRepository] = None,
    ):
        self.pool = pool
        self.instance_repo = instance_repo or InstanceRepository(pool)

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, instance_id: str) -> Context:
        instance = await self.instance_repo.get(instance_id)
        if instance is None:
            raise WorkflowNotFoundError(f"Workflow instance {instance_id} not found")
        return instance.context

    async def get_value(self, instance_id: str, key: str, default: Any = None) -> Any:
        context = await self.get(instance_id)
        return context.get(key, default)

    async def has_value(self, instance_id: str, key: str) -> bool:
        context = await self.get(instance_id)
        return key in context

    async def get_values(self, instance_id: str, keys: Sequence[str]) -> Context:
        """Values for the keys that are present; missing keys are left out."""
        context = await self.get(instance_id)
        return {key: context[key] for key in keys if key in context}

    # =========================================================================
    # WRITES
    # =========================================================================

    async def merge(
        self,
        instance_id: str,
        updates: Mapping[str, Any],
        conn: Optional[AsyncConnection] = None,
    ) -> Context:
        """Shallow-merge `updates` into the context. Returns the new context."""
        def change(context: Context) -> Context:
            context.update(updates)
            return context

        return await self._mutate(instance_id, change, conn)

    async def replace(
        self,
        instance_id: str,
        new_context: Mapping[str, Any],
        conn: Optional[AsyncConnection] = None,
    ) -> Context:
        def change(context: Context) -> Context:
            context.clear()
            context.update(new_context)
            return context

        return await self._mutate(instance_id, change, conn)

    async def set_value(
        self,
        instance_id: str,
        key: str,
        value: Any,
        conn: Optional[AsyncConnection] = None,
    ) -> Context:
        return await self.merge(instance_id, {key: value}, conn)

    async def delete_value(
        self,
        instance_id: str,
        key: str,
        conn: Optional[AsyncConnection] = None,
    ) -> bool:
        """Remove a key. Returns True if it was present."""
        def change(context: Context) -> bool:
            return context.pop(key, _MISSING) is not _MISSING

        return await self._mutate(instance_id, change, conn)

    async def clear(
        self,
        instance_id: str,
        conn: Optional[AsyncConnection] = None,
    ) -> Context:
        return await self.replace(instance_id, {}, conn)

    async def increment(
        self,
        instance_id: str,
        key: str,
        amount: float = 1,
        conn: Optional[AsyncConnection] = None,
    ) -> float:
        """
        Add `amount` to a numeric value. A missing or non-numeric value
        counts as 0.
        """
        def change(context: Context) -> float:
            current = context.get(key)
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                current = 0
            context[key] = current + amount
            return context[key]

        return await self._mutate(instance_id, change, conn)

    async def append(
        self,
        instance_id: str,
        key: str,
        value: Any,
        conn: Optional[AsyncConnection] = None,
    ) -> List[Any]:
        """Append to a list value. A missing or non-list value starts a new list."""
        def change(context: Context) -> List[Any]:
            current = context.get(key)
            items = list(current) if isinstance(current, list) else []
            items.append(value)
            context[key] = items
            return items

        return await self._mutate(instance_id, change, conn)

    async def merge_object(
        self,
        instance_id: str,
        key: str,
        updates: Mapping[str, Any],
        conn: Optional[AsyncConnection] = None,
    ) -> Context:
        """Shallow-merge into a nested object value."""
        def change(context: Context) -> Context:
            current = context.get(key)
            merged = dict(current) if isinstance(current, dict) else {}
            merged.update(updates)
            context[key] = merged
            return merged

        return await self._mutate(instance_id, change, conn)

    # =========================================================================
    # INTERNAL
    # =========================================================================

    async def _mutate(
        self,
        instance_id: str,
        change: Callable[[Context], Any],
        conn: Optional[AsyncConnection] = None,
    ) -> Any:
        if conn is not None:
            return await self._apply(instance_id, change, conn)
        async with transaction(self.pool) as c:
            return await self._apply(instance_id, change, c)

    async def _apply(
        self,
        instance_id: str,
        change: Callable[[Context], Any],
        conn: AsyncConnection,
    ) -> Any:
        instance = await self.instance_repo.lock_instance(instance_id, conn)
        if instance is None:
            raise WorkflowNotFoundError(f"Workflow instance {instance_id} not found")

        context = copy.deepcopy(instance.context)
        result = change(context)

        instance.context = context
        instance.updated_at = datetime.now(timezone.utc)
        if not await self.instance_repo.update_instance(instance, conn=conn):
            raise ConcurrentModificationError(
                f"Instance {instance_id} was modified concurrently",
                operation="context update",
                entity_id=instance_id,
            )

        logger.debug(f"Context of {instance_id} updated ({len(context)} keys)")
        return result


_MISSING = object()


__all__ = ["ContextService"]

# ============================================================================
# INSTANCE REPOSITORY
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - WorkflowInstance and InstanceStep CRUD operations
# PURPOSE: Database access for workflow_instances and workflow_instance_steps
# CREATED: 12 OCT 2026
# ============================================================================
"""
Instance Repository

CRUD operations for workflow instances and their steps.

Locking:
- lock_instance() takes SELECT ... FOR UPDATE on the instance row. Every
  step mutation goes through it first, so two actions on the same
  instance serialize.
- update_step() / update_instance() use the version column for
  optimistic locking and return False on a version conflict.
"""

from typing import Any, Dict, List, Optional

from psycopg import AsyncConnection, sql
from psycopg.rows import dict_row
from psycopg.types.json import Json

from core.contracts import InstanceStatus
from core.models import (
    InstanceStep,
    InvalidCondition,
    WorkflowInstance,
    condition_config_errors,
)
from .base import AsyncBaseRepository
from .database import TABLE_INSTANCES, TABLE_STEPS


def _condition_param(step: InstanceStep) -> Optional[Json]:
    config = step.condition_config
    if config is None:
        return None
    if isinstance(config, InvalidCondition):
        return Json(config.raw)
    return Json(config.model_dump(mode="json"))


class InstanceRepository(AsyncBaseRepository):
    """Repository for WorkflowInstance and InstanceStep entities."""

    # =========================================================================
    # INSTANCES
    # =========================================================================

    async def create(
        self,
        instance: WorkflowInstance,
        steps: List[InstanceStep],
        conn: Optional[AsyncConnection] = None,
    ) -> WorkflowInstance:
        """
        Insert an instance and its materialized steps.

        Args:
            instance: Instance to persist
            steps: Steps produced by materialize_instance_steps()
            conn: Optional connection (joins the caller's transaction)

        Returns:
            Created instance
        """
        with self._error_context("instance creation", instance.instance_id):
            async with self._connection(conn) as c:
                await c.execute(
                    sql.SQL("""
                    INSERT INTO {} (
                        instance_id, template_id, template_version, case_id,
                        status, context, created_by, created_at, updated_at,
                        completed_at, version
                    ) VALUES (
                        %(instance_id)s, %(template_id)s, %(template_version)s,
                        %(case_id)s, %(status)s, %(context)s, %(created_by)s,
                        %(created_at)s, %(updated_at)s, %(completed_at)s, %(version)s
                    )
                    """).format(TABLE_INSTANCES),
                    {
                        "instance_id": instance.instance_id,
                        "template_id": instance.template_id,
                        "template_version": instance.template_version,
                        "case_id": instance.case_id,
                        "status": instance.status.value,
                        "context": Json(instance.context),
                        "created_by": instance.created_by,
                        "created_at": instance.created_at,
                        "updated_at": instance.updated_at,
                        "completed_at": instance.completed_at,
                        "version": instance.version,
                    },
                )
                async with c.cursor() as cur:
                    for step in steps:
                        await cur.execute(
                            sql.SQL("""
                            INSERT INTO {} (
                                step_id, instance_id, template_order, title, description,
                                action_type, role_scope, required, action_state,
                                depends_on, dependency_logic, condition_type,
                                condition_config, assigned_to, notes, action_data,
                                created_at, started_at, completed_at, updated_at, version
                            ) VALUES (
                                %(step_id)s, %(instance_id)s, %(template_order)s,
                                %(title)s, %(description)s, %(action_type)s,
                                %(role_scope)s, %(required)s, %(action_state)s,
                                %(depends_on)s, %(dependency_logic)s, %(condition_type)s,
                                %(condition_config)s, %(assigned_to)s, %(notes)s,
                                %(action_data)s, %(created_at)s, %(started_at)s,
                                %(completed_at)s, %(updated_at)s, %(version)s
                            )
                            """).format(TABLE_STEPS),
                            self._step_params(step),
                        )

        self.logger.info(
            f"Created instance {instance.instance_id} with {len(steps)} steps "
            f"from {instance.template_id} v{instance.template_version}"
        )
        return instance

    async def get(
        self,
        instance_id: str,
        conn: Optional[AsyncConnection] = None,
    ) -> Optional[WorkflowInstance]:
        """Get an instance by id."""
        with self._error_context("instance lookup", instance_id):
            async with self._connection(conn) as c:
                async with c.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        sql.SQL("SELECT * FROM {} WHERE instance_id = %s").format(TABLE_INSTANCES),
                        (instance_id,),
                    )
                    row = await cur.fetchone()

        return self._row_to_instance(row) if row else None

    async def lock_instance(
        self,
        instance_id: str,
        conn: AsyncConnection,
    ) -> Optional[WorkflowInstance]:
        """
        Read an instance with SELECT ... FOR UPDATE.

        Must run inside a transaction on `conn`; the lock is held until it
        commits or rolls back.
        """
        with self._error_context("instance lock", instance_id):
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    sql.SQL("SELECT * FROM {} WHERE instance_id = %s FOR UPDATE").format(TABLE_INSTANCES),
                    (instance_id,),
                )
                row = await cur.fetchone()

        return self._row_to_instance(row) if row else None

    async def update_instance(
        self,
        instance: WorkflowInstance,
        conn: Optional[AsyncConnection] = None,
    ) -> bool:
        """
        Update status, context and timestamps with optimistic locking.

        Returns:
            True if update succeeded, False if version conflict
        """
        with self._error_context("instance update", instance.instance_id):
            async with self._connection(conn) as c:
                result = await c.execute(
                    sql.SQL("""
                    UPDATE {} SET
                        status = %(status)s,
                        context = %(context)s,
                        updated_at = %(updated_at)s,
                        completed_at = %(completed_at)s,
                        version = version + 1
                    WHERE instance_id = %(instance_id)s
                      AND version = %(version)s
                    """).format(TABLE_INSTANCES),
                    {
                        "instance_id": instance.instance_id,
                        "status": instance.status.value,
                        "context": Json(instance.context),
                        "updated_at": instance.updated_at,
                        "completed_at": instance.completed_at,
                        "version": instance.version,
                    },
                )

        if result.rowcount == 0:
            self.logger.warning(
                f"Version conflict updating instance {instance.instance_id} "
                f"(expected version {instance.version})"
            )
            return False

        instance.version += 1
        return True

    async def list_instances(
        self,
        template_id: Optional[str] = None,
        case_id: Optional[str] = None,
        status: Optional[InstanceStatus] = None,
        limit: int = 100,
        conn: Optional[AsyncConnection] = None,
    ) -> List[WorkflowInstance]:
        """List instances, newest first, with optional filters."""
        conditions = []
        params: List[Any] = []
        if template_id:
            conditions.append(sql.SQL("template_id = %s"))
            params.append(template_id)
        if case_id:
            conditions.append(sql.SQL("case_id = %s"))
            params.append(case_id)
        if status:
            conditions.append(sql.SQL("status = %s"))
            params.append(status.value)

        where = sql.SQL("WHERE ") + sql.SQL(" AND ").join(conditions) if conditions else sql.SQL("")
        params.append(limit)

        with self._error_context("instance listing"):
            async with self._connection(conn) as c:
                async with c.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        sql.SQL("SELECT * FROM {} {} ORDER BY created_at DESC LIMIT %s").format(
                            TABLE_INSTANCES, where
                        ),
                        params,
                    )
                    rows = await cur.fetchall()

        return [self._row_to_instance(row) for row in rows]

    # =========================================================================
    # STEPS
    # =========================================================================

    async def get_steps(
        self,
        instance_id: str,
        conn: Optional[AsyncConnection] = None,
    ) -> List[InstanceStep]:
        """Get all steps of an instance in template order."""
        with self._error_context("step listing", instance_id):
            async with self._connection(conn) as c:
                async with c.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        sql.SQL(
                            "SELECT * FROM {} WHERE instance_id = %s ORDER BY template_order"
                        ).format(TABLE_STEPS),
                        (instance_id,),
                    )
                    rows = await cur.fetchall()

        return [self._row_to_step(row) for row in rows]

    async def get_step(
        self,
        step_id: str,
        conn: Optional[AsyncConnection] = None,
    ) -> Optional[InstanceStep]:
        """Get a single step by id."""
        with self._error_context("step lookup", step_id):
            async with self._connection(conn) as c:
                async with c.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        sql.SQL("SELECT * FROM {} WHERE step_id = %s").format(TABLE_STEPS),
                        (step_id,),
                    )
                    row = await cur.fetchone()

        return self._row_to_step(row) if row else None

    async def update_step(
        self,
        step: InstanceStep,
        conn: Optional[AsyncConnection] = None,
    ) -> bool:
        """
        Update a step with optimistic locking.

        Returns:
            True if update succeeded, False if version conflict
        """
        with self._error_context("step update", step.step_id):
            async with self._connection(conn) as c:
                result = await c.execute(
                    sql.SQL("""
                    UPDATE {} SET
                        action_state = %(action_state)s,
                        assigned_to = %(assigned_to)s,
                        notes = %(notes)s,
                        action_data = %(action_data)s,
                        started_at = %(started_at)s,
                        completed_at = %(completed_at)s,
                        updated_at = %(updated_at)s,
                        version = version + 1
                    WHERE step_id = %(step_id)s
                      AND version = %(version)s
                    """).format(TABLE_STEPS),
                    {
                        "step_id": step.step_id,
                        "action_state": step.action_state.value,
                        "assigned_to": step.assigned_to,
                        "notes": step.notes,
                        "action_data": Json(step.action_data),
                        "started_at": step.started_at,
                        "completed_at": step.completed_at,
                        "updated_at": step.updated_at,
                        "version": step.version,
                    },
                )

        if result.rowcount == 0:
            self.logger.warning(
                f"Version conflict updating step {step.step_id} "
                f"(expected version {step.version})"
            )
            return False

        step.version += 1
        self.logger.debug(
            f"Updated step {step.step_id} state={step.action_state.value} version={step.version}"
        )
        return True

    # =========================================================================
    # ROW MAPPING
    # =========================================================================

    @staticmethod
    def _step_params(step: InstanceStep) -> Dict[str, Any]:
        return {
            "step_id": step.step_id,
            "instance_id": step.instance_id,
            "template_order": step.template_order,
            "title": step.title,
            "description": step.description,
            "action_type": step.action_type.value,
            "role_scope": step.role_scope.value,
            "required": step.required,
            "action_state": step.action_state.value,
            "depends_on": Json(list(step.depends_on)),
            "dependency_logic": step.dependency_logic.value,
            "condition_type": step.condition_type.value,
            "condition_config": _condition_param(step),
            "assigned_to": step.assigned_to,
            "notes": step.notes,
            "action_data": Json(step.action_data),
            "created_at": step.created_at,
            "started_at": step.started_at,
            "completed_at": step.completed_at,
            "updated_at": step.updated_at,
            "version": step.version,
        }

    def _row_to_instance(self, row: Dict[str, Any]) -> WorkflowInstance:
        """Convert database row to WorkflowInstance."""
        return WorkflowInstance(
            instance_id=row["instance_id"],
            template_id=row["template_id"],
            template_version=row["template_version"],
            case_id=row.get("case_id"),
            status=InstanceStatus(row["status"]),
            context=row.get("context") or {},
            created_by=row.get("created_by"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row.get("completed_at"),
            version=row.get("version", 1),
        )

    def _load_condition(self, row: Dict[str, Any]) -> Any:
        """
        Validate a stored condition leniently.

        A payload that no longer validates becomes an InvalidCondition; the
        scheduler then defers that step instead of the whole instance
        failing to load.
        """
        raw = row.get("condition_config")
        if raw is None:
            return None
        errors = condition_config_errors(raw)
        if not errors:
            return raw
        error = "; ".join(errors)
        self.logger.error(
            f"Stored condition for step {row['step_id']} of instance "
            f"{row['instance_id']} is invalid: {error}"
        )
        return InvalidCondition(raw=raw, error=error)

    def _row_to_step(self, row: Dict[str, Any]) -> InstanceStep:
        """Convert database row to InstanceStep."""
        return InstanceStep.model_validate({
            "step_id": row["step_id"],
            "instance_id": row["instance_id"],
            "template_order": row["template_order"],
            "title": row["title"],
            "description": row.get("description"),
            "action_type": row["action_type"],
            "role_scope": row["role_scope"],
            "required": row["required"],
            "action_state": row["action_state"],
            "depends_on": row.get("depends_on") or [],
            "dependency_logic": row["dependency_logic"],
            "condition_type": row["condition_type"],
            "condition_config": self._load_condition(row),
            "assigned_to": row.get("assigned_to"),
            "notes": row.get("notes"),
            "action_data": row.get("action_data") or {},
            "created_at": row["created_at"],
            "started_at": row.get("started_at"),
            "completed_at": row.get("completed_at"),
            "updated_at": row["updated_at"],
            "version": row.get("version", 1),
        })


__all__ = ["InstanceRepository"]

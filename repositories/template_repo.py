# ============================================================================
# TEMPLATE REPOSITORY
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - WorkflowTemplate CRUD operations
# PURPOSE: Database access for the workflow_templates table
# CREATED: 12 OCT 2026
# ============================================================================
"""
Template Repository

CRUD operations for versioned workflow templates. Steps are stored as a
JSONB array on the template row.
"""

from typing import Any, Dict, List, Optional

from psycopg import AsyncConnection, sql
from psycopg.rows import dict_row
from psycopg.types.json import Json

from core.models import TemplateStep, WorkflowTemplate
from .base import AsyncBaseRepository
from .database import TABLE_TEMPLATES


class TemplateRepository(AsyncBaseRepository):
    """Repository for WorkflowTemplate entities."""

    @staticmethod
    def _params(template: WorkflowTemplate) -> Dict[str, Any]:
        return {
            "template_id": template.template_id,
            "version": template.version,
            "name": template.name,
            "description": template.description,
            "is_active": template.is_active,
            "steps": Json([step.model_dump(mode="json") for step in template.steps]),
            "created_by": template.created_by,
            "created_at": template.created_at,
            "updated_at": template.updated_at,
            "published_at": template.published_at,
        }

    async def create(
        self,
        template: WorkflowTemplate,
        conn: Optional[AsyncConnection] = None,
    ) -> WorkflowTemplate:
        """
        Insert a template version.

        Args:
            template: Template to persist
            conn: Optional connection (joins the caller's transaction)

        Returns:
            Created template
        """
        with self._error_context("template creation", template.template_id):
            async with self._connection(conn) as c:
                await c.execute(
                    sql.SQL("""
                    INSERT INTO {} (
                        template_id, version, name, description, is_active, steps,
                        created_by, created_at, updated_at, published_at
                    ) VALUES (
                        %(template_id)s, %(version)s, %(name)s, %(description)s,
                        %(is_active)s, %(steps)s, %(created_by)s, %(created_at)s,
                        %(updated_at)s, %(published_at)s
                    )
                    """).format(TABLE_TEMPLATES),
                    self._params(template),
                )
        self.logger.info(f"Created template {template.template_id} v{template.version}")
        return template

    async def get(
        self,
        template_id: str,
        version: Optional[int] = None,
        conn: Optional[AsyncConnection] = None,
    ) -> Optional[WorkflowTemplate]:
        """
        Get a template version.

        Args:
            template_id: Template identifier
            version: Specific version, or None for the latest

        Returns:
            WorkflowTemplate or None
        """
        if version is None:
            query = sql.SQL(
                "SELECT * FROM {} WHERE template_id = %s ORDER BY version DESC LIMIT 1"
            ).format(TABLE_TEMPLATES)
            params: tuple = (template_id,)
        else:
            query = sql.SQL(
                "SELECT * FROM {} WHERE template_id = %s AND version = %s"
            ).format(TABLE_TEMPLATES)
            params = (template_id, version)

        with self._error_context("template lookup", template_id):
            async with self._connection(conn) as c:
                async with c.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, params)
                    row = await cur.fetchone()

        return self._row_to_template(row) if row else None

    async def get_active(
        self,
        template_id: str,
        conn: Optional[AsyncConnection] = None,
    ) -> Optional[WorkflowTemplate]:
        """Get the published version of a template."""
        with self._error_context("active template lookup", template_id):
            async with self._connection(conn) as c:
                async with c.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        sql.SQL("""
                        SELECT * FROM {}
                        WHERE template_id = %s AND is_active
                        ORDER BY version DESC LIMIT 1
                        """).format(TABLE_TEMPLATES),
                        (template_id,),
                    )
                    row = await cur.fetchone()

        return self._row_to_template(row) if row else None

    async def list_latest(
        self,
        active_only: bool = False,
        limit: int = 100,
        conn: Optional[AsyncConnection] = None,
    ) -> List[WorkflowTemplate]:
        """List the latest version of every template."""
        query = sql.SQL("""
            SELECT DISTINCT ON (template_id) * FROM {}
            WHERE (%s = FALSE OR is_active)
            ORDER BY template_id, version DESC
            LIMIT %s
        """).format(TABLE_TEMPLATES)

        with self._error_context("template listing"):
            async with self._connection(conn) as c:
                async with c.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, (active_only, limit))
                    rows = await cur.fetchall()

        return [self._row_to_template(row) for row in rows]

    async def update(
        self,
        template: WorkflowTemplate,
        conn: Optional[AsyncConnection] = None,
    ) -> bool:
        """
        Update a draft template version in place.

        Published versions are immutable; the WHERE clause refuses them.

        Returns:
            True if a draft row was updated
        """
        with self._error_context("template update", template.template_id):
            async with self._connection(conn) as c:
                result = await c.execute(
                    sql.SQL("""
                    UPDATE {} SET
                        name = %(name)s,
                        description = %(description)s,
                        steps = %(steps)s,
                        updated_at = %(updated_at)s
                    WHERE template_id = %(template_id)s
                      AND version = %(version)s
                      AND NOT is_active
                    """).format(TABLE_TEMPLATES),
                    self._params(template),
                )
        return result.rowcount > 0

    async def publish(
        self,
        template: WorkflowTemplate,
        conn: Optional[AsyncConnection] = None,
    ) -> None:
        """
        Make one version the active one.

        Other versions of the same template are deactivated in the same
        statement batch; run inside a transaction.
        """
        with self._error_context("template publish", template.template_id):
            async with self._connection(conn) as c:
                await c.execute(
                    sql.SQL("""
                    UPDATE {} SET is_active = FALSE, updated_at = %s
                    WHERE template_id = %s AND version <> %s AND is_active
                    """).format(TABLE_TEMPLATES),
                    (template.updated_at, template.template_id, template.version),
                )
                await c.execute(
                    sql.SQL("""
                    UPDATE {} SET is_active = TRUE, published_at = %s, updated_at = %s
                    WHERE template_id = %s AND version = %s
                    """).format(TABLE_TEMPLATES),
                    (template.published_at, template.updated_at, template.template_id, template.version),
                )
        self.logger.info(f"Published template {template.template_id} v{template.version}")

    def _row_to_template(self, row: Dict[str, Any]) -> WorkflowTemplate:
        """Convert database row to WorkflowTemplate."""
        return WorkflowTemplate(
            template_id=row["template_id"],
            version=row["version"],
            name=row["name"],
            description=row.get("description"),
            is_active=row["is_active"],
            steps=[TemplateStep.model_validate(step) for step in (row.get("steps") or [])],
            created_by=row.get("created_by"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            published_at=row.get("published_at"),
        )


__all__ = ["TemplateRepository"]

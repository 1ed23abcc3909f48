# ============================================================================
# SCHEMA DDL
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - PostgreSQL schema for templates, instances and steps
# PURPOSE: Idempotent DDL applied at startup or by operators
# CREATED: 12 OCT 2026
# ============================================================================
"""
Schema DDL

All statements use CREATE ... IF NOT EXISTS and are safe to run
repeatedly. Composed with psycopg.sql so the schema name is quoted.

Usage:
    from repositories.schema import ensure_schema

    await ensure_schema(pool)
"""

import logging
from typing import List

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from .database import SCHEMA, TABLE_INSTANCES, TABLE_STEPS, TABLE_TEMPLATES

logger = logging.getLogger(__name__)


def build_ddl() -> List[sql.Composed]:
    """DDL statements in dependency order."""
    return [
        sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(SCHEMA)),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            template_id   VARCHAR(64)  NOT NULL,
            version       INTEGER      NOT NULL CHECK (version >= 1),
            name          VARCHAR(128) NOT NULL,
            description   TEXT,
            is_active     BOOLEAN      NOT NULL DEFAULT FALSE,
            steps         JSONB        NOT NULL DEFAULT '[]'::jsonb,
            created_by    VARCHAR(128),
            created_at    TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            updated_at    TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            published_at  TIMESTAMPTZ,
            PRIMARY KEY (template_id, version)
        )
        """).format(TABLE_TEMPLATES),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            instance_id       VARCHAR(64)  PRIMARY KEY,
            template_id       VARCHAR(64)  NOT NULL,
            template_version  INTEGER      NOT NULL,
            case_id           VARCHAR(128),
            status            VARCHAR(16)  NOT NULL DEFAULT 'ACTIVE',
            context           JSONB        NOT NULL DEFAULT '{{}}'::jsonb,
            created_by        VARCHAR(128),
            created_at        TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            completed_at      TIMESTAMPTZ,
            version           INTEGER      NOT NULL DEFAULT 1,
            FOREIGN KEY (template_id, template_version) REFERENCES {} (template_id, version)
        )
        """).format(TABLE_INSTANCES, TABLE_TEMPLATES),

        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            step_id           VARCHAR(64)  PRIMARY KEY,
            instance_id       VARCHAR(64)  NOT NULL REFERENCES {} (instance_id) ON DELETE CASCADE,
            template_order    INTEGER      NOT NULL,
            title             VARCHAR(200) NOT NULL,
            description       TEXT,
            action_type       VARCHAR(32)  NOT NULL,
            role_scope        VARCHAR(16)  NOT NULL,
            required          BOOLEAN      NOT NULL DEFAULT TRUE,
            action_state      VARCHAR(16)  NOT NULL DEFAULT 'PENDING',
            depends_on        JSONB        NOT NULL DEFAULT '[]'::jsonb,
            dependency_logic  VARCHAR(8)   NOT NULL DEFAULT 'ALL',
            condition_type    VARCHAR(16)  NOT NULL DEFAULT 'ALWAYS',
            condition_config  JSONB,
            assigned_to       VARCHAR(128),
            notes             TEXT,
            action_data       JSONB        NOT NULL DEFAULT '{{}}'::jsonb,
            created_at        TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            started_at        TIMESTAMPTZ,
            completed_at      TIMESTAMPTZ,
            updated_at        TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            version           INTEGER      NOT NULL DEFAULT 1,
            UNIQUE (instance_id, template_order)
        )
        """).format(TABLE_STEPS, TABLE_INSTANCES),

        sql.SQL("CREATE INDEX IF NOT EXISTS idx_wf_instances_template ON {} (template_id, template_version)")
        .format(TABLE_INSTANCES),
        sql.SQL("CREATE INDEX IF NOT EXISTS idx_wf_instances_case ON {} (case_id) WHERE case_id IS NOT NULL")
        .format(TABLE_INSTANCES),
        sql.SQL("CREATE INDEX IF NOT EXISTS idx_wf_steps_state ON {} (instance_id, action_state)")
        .format(TABLE_STEPS),
    ]


async def ensure_schema(pool: AsyncConnectionPool) -> int:
    """
    Apply the DDL in one transaction.

    Returns:
        Number of statements executed
    """
    statements = build_ddl()
    async with pool.connection() as conn:
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)
    logger.info(f"Schema {SCHEMA} ensured ({len(statements)} statements)")
    return len(statements)


__all__ = ["build_ddl", "ensure_schema"]

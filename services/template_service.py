# ============================================================================
# TEMPLATE SERVICE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Template authoring and versioning
# PURPOSE: Validate, store, version and publish workflow templates
# CREATED: 12 OCT 2026
# ============================================================================
"""
Template Service

Every write runs the TemplateValidator first; nothing that fails
validation is stored.

Versioning:
- A draft (not yet published) version is edited in place.
- Editing a published version creates a new draft version.
- Publishing re-validates and makes that version the only active one.

Seed templates are YAML files in WORKFLOW_TEMPLATES_DIR (default
./templates). load_all() creates any that are not in the database yet.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml
from pydantic import ValidationError
from psycopg_pool import AsyncConnectionPool

from core.config import get_defaults
from core.errors import (
    TemplateNotPublishedError,
    ValidationIssue,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from core.models import TemplateStep, WorkflowTemplate
from core.observability import get_workflow_metrics
from orchestrator.engine.validation import TemplateValidator, describe_dependencies
from repositories import TemplateRepository, transaction

logger = logging.getLogger(__name__)


class TemplateService:
    """Service for workflow template management."""

    def __init__(
        self,
        pool: AsyncConnectionPool,
        template_repo: Optional[TemplateRepository] = None,
        validator: Optional[TemplateValidator] = None,
        templates_dir: Optional[str] = None,
    ):
        """
        Initialize template service.

        Args:
            pool: Database connection pool
            template_repo: Repository override (tests)
            validator: Validator override (tests)
            templates_dir: Directory containing seed template YAML files.
                           Defaults to WORKFLOW_TEMPLATES_DIR.
        """
        self.pool = pool
        self.template_repo = template_repo or TemplateRepository(pool)
        self.validator = validator or TemplateValidator()
        self.templates_dir = Path(templates_dir or get_defaults().templates.templates_dir)
        self.metrics = get_workflow_metrics()

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, steps: Sequence[TemplateStep]) -> List[ValidationIssue]:
        """Validate a step list without storing anything."""
        issues = self.validator.validate(steps)
        if issues:
            self.metrics.record_validation_failure(len(issues))
        return issues

    def validate_or_raise(self, steps: Sequence[TemplateStep]) -> None:
        issues = self.validate(steps)
        if issues:
            raise WorkflowValidationError(issues)

    def describe(self, template: WorkflowTemplate) -> str:
        return describe_dependencies(template.steps)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_template(
        self,
        template_id: str,
        version: Optional[int] = None,
    ) -> WorkflowTemplate:
        """
        Get a template version, raising if not found.

        Raises:
            WorkflowNotFoundError
        """
        template = await self.template_repo.get(template_id, version)
        if template is None:
            suffix = f" v{version}" if version is not None else ""
            raise WorkflowNotFoundError(f"Template not found: {template_id}{suffix}")
        return template

    async def get_published(self, template_id: str) -> WorkflowTemplate:
        """
        Get the active version for instantiation.

        Raises:
            WorkflowNotFoundError: No version exists
            TemplateNotPublishedError: Versions exist but none is active
        """
        template = await self.template_repo.get_active(template_id)
        if template is not None:
            return template
        await self.get_template(template_id)
        raise TemplateNotPublishedError(f"Template {template_id} has no published version")

    async def list_templates(self, active_only: bool = False, limit: int = 100) -> List[WorkflowTemplate]:
        return await self.template_repo.list_latest(active_only=active_only, limit=limit)

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """
        Validate and store a new template as a draft.

        Raises:
            WorkflowValidationError: Invalid steps, or template_id taken
        """
        existing = await self.template_repo.get(template.template_id)
        if existing is not None:
            raise WorkflowValidationError([
                ValidationIssue(
                    field="template_id",
                    message=f"Template {template.template_id} already exists",
                )
            ])

        self.validate_or_raise(template.steps)
        template = template.model_copy(update={"version": 1, "is_active": False, "published_at": None})
        created = await self.template_repo.create(template)
        logger.info(f"Template {created.template_id} created with {len(created.steps)} steps")
        return created

    async def update_template(
        self,
        template_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        steps: Optional[List[TemplateStep]] = None,
    ) -> WorkflowTemplate:
        """
        Edit the latest version of a template.

        A draft is updated in place. A published latest version is left
        untouched and the changes go into a new draft version.
        """
        current = await self.get_template(template_id)

        if current.is_active:
            updated = current.next_version()
        else:
            updated = current.model_copy(deep=True)

        if name is not None:
            updated.name = name
        if description is not None:
            updated.description = description
        if steps is not None:
            updated.steps = steps
        updated.updated_at = datetime.now(timezone.utc)

        self.validate_or_raise(updated.steps)

        if current.is_active:
            await self.template_repo.create(updated)
            logger.info(
                f"Template {template_id} v{current.version} is published; "
                f"created draft v{updated.version}"
            )
        else:
            if not await self.template_repo.update(updated):
                raise WorkflowNotFoundError(
                    f"Draft template not found: {template_id} v{updated.version}"
                )
            logger.info(f"Template {template_id} v{updated.version} updated")
        return updated

    async def publish_template(
        self,
        template_id: str,
        version: Optional[int] = None,
    ) -> WorkflowTemplate:
        """
        Re-validate a version and make it the active one.

        Other versions of the template are deactivated in the same
        transaction.
        """
        template = await self.get_template(template_id, version)
        self.validate_or_raise(template.steps)

        now = datetime.now(timezone.utc)
        template.is_active = True
        template.published_at = now
        template.updated_at = now

        async with transaction(self.pool) as conn:
            await self.template_repo.publish(template, conn=conn)

        logger.info(f"Template {template_id} v{template.version} published")
        return template

    # =========================================================================
    # SEED TEMPLATES
    # =========================================================================

    async def load_all(self) -> int:
        """
        Create seed templates from the templates directory.

        Templates already in the database are left alone. A file with
        `publish: true` is published after creation.

        Returns:
            Number of templates created
        """
        if not self.templates_dir.exists():
            logger.warning(f"Templates directory not found: {self.templates_dir}")
            return 0

        files = sorted(self.templates_dir.glob("*.yaml")) + sorted(self.templates_dir.glob("*.yml"))
        count = 0
        for yaml_file in files:
            try:
                template, publish = self._load_yaml(yaml_file)
            except WorkflowValidationError as e:
                logger.error(f"Seed template {yaml_file.name} rejected: {e.message}")
                continue
            except (OSError, yaml.YAMLError, ValueError) as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                continue

            if await self.template_repo.get(template.template_id) is not None:
                logger.debug(f"Seed template {template.template_id} already present")
                continue

            try:
                await self.create_template(template)
                if publish:
                    await self.publish_template(template.template_id, 1)
            except WorkflowValidationError as e:
                logger.error(f"Seed template {yaml_file.name} rejected: {e.message}")
                continue

            count += 1
            logger.info(f"Loaded seed template: {template.template_id}")

        logger.info(f"Loaded {count} templates from {self.templates_dir}")
        return count

    def _load_yaml(self, path: Path) -> Tuple[WorkflowTemplate, bool]:
        """
        Load a template from a YAML file.

        Returns:
            (template, publish flag)

        Raises:
            WorkflowValidationError: If the mapping is not a valid template
        """
        with open(path) as f:
            data: Dict[str, Any] = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{path.name}: expected a mapping at top level")

        publish = bool(data.pop("publish", False))
        data.setdefault("template_id", path.stem)
        try:
            template = WorkflowTemplate.model_validate(data)
        except ValidationError as e:
            raise WorkflowValidationError.from_errors(e.errors()) from e
        return template, publish


__all__ = ["TemplateService"]

# ============================================================================
# INSTANCE SERVICE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Instance lifecycle and scheduling adapter
# PURPOSE: Instantiate templates, apply step actions, advance instances
# CREATED: 12 OCT 2026
# ============================================================================
"""
Instance Service

Transactional adapter around the StepScheduler.

Every step action (start, complete, skip) runs in one transaction:

    lock instance row (FOR UPDATE)
      -> run the action type's handler (start/complete)
      -> apply the action to the step (optimistic version check)
      -> merge handler and caller context updates
      -> scheduler pass over all steps of the instance
      -> persist every transition the pass decided
      -> mark the instance COMPLETED when every step is terminal
    commit
    -> deliver step-ready notifications

A scheduler error (invalid dependency data, CUSTOM logic) rolls the
whole transaction back, including the triggering action.
A payload the handler rejects (ActionHandlerError, 422) does the same.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

from core.contracts import ActionState, InstanceStatus
from core.errors import DependencyError, WorkflowNotFoundError, WorkflowTransitionError
from core.logging import log_context
from core.models import InstanceStep, WorkflowInstance, materialize_instance_steps
from core.observability import get_tracer, get_workflow_metrics
from handlers import ActionRegistry, get_action_registry
from orchestrator.engine.dependencies import DependencyEvaluator
from orchestrator.engine.scheduler import SchedulingResult, StepScheduler, get_scheduler
from repositories import ConcurrentModificationError, InstanceRepository, transaction
from .context_service import ContextService
from .notification_service import NotificationService
from .template_service import TemplateService

logger = logging.getLogger(__name__)


@dataclass
class InstanceState:
    """An instance with its steps, and the scheduler pass that produced them."""
    instance: WorkflowInstance
    steps: List[InstanceStep]
    scheduling: Optional[SchedulingResult] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "instance": self.instance.model_dump(mode="json"),
            "steps": [step.model_dump(mode="json") for step in self.steps],
        }
        if self.scheduling is not None:
            result["scheduling"] = self.scheduling.to_dict()
        return result


class InstanceService:
    """Service for workflow instances and their steps."""

    def __init__(
        self,
        pool: AsyncConnectionPool,
        template_service: TemplateService,
        instance_repo: Optional[InstanceRepository] = None,
        context_service: Optional[ContextService] = None,
        notification_service: Optional[NotificationService] = None,
        scheduler: Optional[StepScheduler] = None,
        action_registry: Optional[ActionRegistry] = None,
    ):
        """
        Initialize instance service.

        Args:
            pool: Database connection pool
            template_service: Source of published templates
            instance_repo: Repository override (tests)
            context_service: Context store; shares instance_repo by default
            notification_service: Delivery of step-ready notifications
            scheduler: Scheduler override (tests)
            action_registry: Action handlers; the global registry by default
        """
        self.pool = pool
        self.template_service = template_service
        self.instance_repo = instance_repo or InstanceRepository(pool)
        self.context_service = context_service or ContextService(pool, self.instance_repo)
        self.notifications = notification_service or NotificationService()
        self.scheduler = scheduler or get_scheduler()
        self.actions = action_registry or get_action_registry()
        self.metrics = get_workflow_metrics()
        self.tracer = get_tracer()

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_instance(self, instance_id: str) -> InstanceState:
        instance = await self.instance_repo.get(instance_id)
        if instance is None:
            raise WorkflowNotFoundError(f"Workflow instance {instance_id} not found")
        steps = await self.instance_repo.get_steps(instance_id)
        return InstanceState(instance=instance, steps=steps)

    async def list_instances(
        self,
        template_id: Optional[str] = None,
        case_id: Optional[str] = None,
        status: Optional[InstanceStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowInstance]:
        return await self.instance_repo.list_instances(
            template_id=template_id, case_id=case_id, status=status, limit=limit
        )

    async def get_dependency_report(self, instance_id: str) -> Dict[str, Any]:
        """
        Per-step dependency status plus ready and blocked step ids.

        Read-only; never runs the scheduler.
        """
        state = await self.get_instance(instance_id)
        evaluator: DependencyEvaluator = self.scheduler.dependencies
        return {
            "instance_id": instance_id,
            "steps": [evaluator.get_dependency_status(s, state.steps).to_dict() for s in state.steps],
            "ready": [s.step_id for s in evaluator.get_ready_steps(state.steps)],
            "blocked": [s.step_id for s in evaluator.get_blocked_steps(state.steps)],
        }

    # =========================================================================
    # INSTANTIATION
    # =========================================================================

    async def instantiate(
        self,
        template_id: str,
        case_id: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> InstanceState:
        """
        Create an instance of the published template version and run the
        first scheduler pass.

        Raises:
            WorkflowNotFoundError: Unknown template
            TemplateNotPublishedError: No active version
        """
        template = await self.template_service.get_published(template_id)

        instance = WorkflowInstance(
            template_id=template.template_id,
            template_version=template.version,
            case_id=case_id,
            context=dict(context or {}),
            created_by=created_by,
        )
        steps = materialize_instance_steps(template, instance.instance_id)

        with log_context(instance_id=instance.instance_id, template_id=template_id):
            async with transaction(self.pool) as conn:
                await self.instance_repo.create(instance, steps, conn=conn)
                state = await self._advance_locked(instance.instance_id, conn)

            self.metrics.record_instance_created(template_id)
            logger.info(
                f"Instantiated {template_id} v{template.version} as {instance.instance_id} "
                f"({state.scheduling.activated_count} steps ready)"
            )
            await self.notifications.send_all(state.scheduling.notifications)
        return state

    # =========================================================================
    # STEP ACTIONS
    # =========================================================================

    async def start_step(self, step_id: str, by: Optional[str] = None) -> InstanceState:
        """READY -> IN_PROGRESS, then the handler's start hook."""
        def action(step: InstanceStep, instance: WorkflowInstance) -> Dict[str, Any]:
            step.mark_started(by)
            return self.actions.get(step.action_type).handle_start(
                step, by=by, instance_context=instance.context
            )

        return await self._apply_step_action(step_id, "start", action)

    async def complete_step(
        self,
        step_id: str,
        by: Optional[str] = None,
        payload: Optional[Any] = None,
        context_updates: Optional[Mapping[str, Any]] = None,
    ) -> InstanceState:
        """
        IN_PROGRESS -> COMPLETED, then re-evaluate the instance.

        Args:
            step_id: Step to complete
            by: Acting user
            payload: Validated by the action type's handler, then stored
                     on the history entry
            context_updates: Merged into the instance context before the
                             scheduler pass, in the same transaction.
                             They win over the handler's own updates.

        Raises:
            ActionHandlerError: Payload or step config rejected (422)
            WorkflowTransitionError: Step is not IN_PROGRESS
        """
        def action(step: InstanceStep, instance: WorkflowInstance) -> Dict[str, Any]:
            step.ensure_can_transition(ActionState.COMPLETED)
            updates = self.actions.get(step.action_type).handle_completion(
                step, payload, by=by, instance_context=instance.context
            )
            step.mark_completed(by, payload)
            return updates

        return await self._apply_step_action(step_id, "complete", action, context_updates)

    async def skip_step(
        self,
        step_id: str,
        by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> InstanceState:
        """
        Skip a non-required step that has not finished.

        Raises:
            WorkflowTransitionError: Step is required, or already terminal
        """
        def action(step: InstanceStep, instance: WorkflowInstance) -> None:
            if step.required:
                raise WorkflowTransitionError(f"Step {step.step_id} is required and cannot be skipped")
            step.mark_skipped(by=by, note=note or "Skipped manually")

        return await self._apply_step_action(step_id, "skip", action)

    async def advance(self, instance_id: str) -> InstanceState:
        """Run a scheduler pass without a triggering action."""
        with log_context(instance_id=instance_id, operation="advance"):
            async with transaction(self.pool) as conn:
                state = await self._advance_locked(instance_id, conn)
            await self.notifications.send_all(state.scheduling.notifications)
        return state

    async def cancel_instance(self, instance_id: str) -> WorkflowInstance:
        """ACTIVE -> CANCELLED. Steps keep their states; no further scheduling."""
        async with transaction(self.pool) as conn:
            instance = await self._lock(instance_id, conn)
            instance.mark_cancelled()
            await self._save_instance(instance, conn)
        logger.info(f"Instance {instance_id} cancelled")
        return instance

    # =========================================================================
    # INTERNAL
    # =========================================================================

    async def _apply_step_action(
        self,
        step_id: str,
        operation: str,
        action: Callable[[InstanceStep, WorkflowInstance], Optional[Mapping[str, Any]]],
        context_updates: Optional[Mapping[str, Any]] = None,
    ) -> InstanceState:
        found = await self.instance_repo.get_step(step_id)
        if found is None:
            raise WorkflowNotFoundError(f"Step {step_id} not found")
        instance_id = found.instance_id

        with log_context(instance_id=instance_id, step_id=step_id, operation=operation):
            async with transaction(self.pool) as conn:
                instance = await self._lock(instance_id, conn)
                if instance.status != InstanceStatus.ACTIVE:
                    raise WorkflowTransitionError(
                        f"Instance {instance_id} is {instance.status.value}; steps cannot change"
                    )

                # Re-read under the instance lock
                step = await self.instance_repo.get_step(step_id, conn=conn)
                if step is None:
                    raise WorkflowNotFoundError(f"Step {step_id} not found")

                from_state = step.action_state
                with log_context(action_type=step.action_type.value):
                    handler_updates = action(step, instance)
                if not await self.instance_repo.update_step(step, conn=conn):
                    raise ConcurrentModificationError(
                        f"Step {step_id} was modified concurrently",
                        operation=operation,
                        entity_id=step_id,
                    )
                self.metrics.record_transition(from_state.value, step.action_state.value)
                logger.info(f"Step {step_id} {from_state.value} -> {step.action_state.value}")

                updates = {**(handler_updates or {}), **(context_updates or {})}
                if updates:
                    await self.context_service.merge(instance_id, updates, conn=conn)

                state = await self._advance_locked(instance_id, conn)

            await self.notifications.send_all(state.scheduling.notifications)
        return state

    async def _advance_locked(self, instance_id: str, conn: AsyncConnection) -> InstanceState:
        """
        Scheduler pass inside the caller's transaction.

        Takes (or re-takes) the instance row lock, so the context it reads
        is the committed-or-own-transaction value.
        """
        instance = await self._lock(instance_id, conn)
        steps = await self.instance_repo.get_steps(instance_id, conn=conn)

        if instance.status != InstanceStatus.ACTIVE:
            logger.debug(f"Instance {instance_id} is {instance.status.value}; nothing to schedule")
            return InstanceState(instance=instance, steps=steps, scheduling=SchedulingResult(steps=steps))

        with self.tracer.start_span("scheduler_pass", {"instance_id": instance_id}) as span:
            started = time.time()
            try:
                result = self.scheduler.determine_next_steps(steps, instance.context, instance)
            except DependencyError as e:
                logger.error(
                    f"Scheduler pass aborted for instance {instance_id} "
                    f"(step {e.step_id}): {e.message}"
                )
                raise
            duration_ms = (time.time() - started) * 1000
            span.set_attribute("activated", result.activated_count)
            span.set_attribute("skipped", result.skipped_count)

        for step in result.changed_steps:
            if not await self.instance_repo.update_step(step, conn=conn):
                raise ConcurrentModificationError(
                    f"Step {step.step_id} was modified concurrently",
                    operation="advance",
                    entity_id=step.step_id,
                )
        for transition in result.transitions:
            self.metrics.record_transition(transition.from_state.value, transition.to_state.value)
        self.metrics.record_step_ready(result.activated_count)
        self.metrics.record_scheduler_pass(duration_ms, result.activated_count, len(result.deferred))

        if result.activated_count == 0 and result.all_terminal:
            instance.mark_completed()
            await self._save_instance(instance, conn)
            self.metrics.record_instance_completed(instance.template_id)
            logger.info(f"Instance {instance_id} completed")

        return InstanceState(instance=instance, steps=result.steps, scheduling=result)

    async def _lock(self, instance_id: str, conn: AsyncConnection) -> WorkflowInstance:
        instance = await self.instance_repo.lock_instance(instance_id, conn)
        if instance is None:
            raise WorkflowNotFoundError(f"Workflow instance {instance_id} not found")
        return instance

    async def _save_instance(self, instance: WorkflowInstance, conn: AsyncConnection) -> None:
        instance.updated_at = datetime.now(timezone.utc)
        if not await self.instance_repo.update_instance(instance, conn=conn):
            raise ConcurrentModificationError(
                f"Instance {instance.instance_id} was modified concurrently",
                operation="instance update",
                entity_id=instance.instance_id,
            )


__all__ = ["InstanceService", "InstanceState"]

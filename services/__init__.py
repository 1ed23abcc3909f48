# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Business logic layer
# PURPOSE: Template, instance, context and notification services
# CREATED: 12 OCT 2026
# ============================================================================
"""
Services Module

Business logic for the workflow engine.
Services coordinate repositories, the scheduler and notification sinks.

Usage:
    from services import TemplateService, InstanceService

    template_service = TemplateService(pool)
    instance_service = InstanceService(pool, template_service)
    state = await instance_service.instantiate("client_intake", case_id="matter-42")
"""

from .notification_service import (
    NotificationSink,
    LoggingNotificationSink,
    WebhookNotificationSink,
    NotificationService,
    create_sink,
)
from .template_service import TemplateService
from .context_service import ContextService
from .instance_service import InstanceService, InstanceState

__all__ = [
    "NotificationSink",
    "LoggingNotificationSink",
    "WebhookNotificationSink",
    "NotificationService",
    "create_sink",
    "TemplateService",
    "ContextService",
    "InstanceService",
    "InstanceState",
]

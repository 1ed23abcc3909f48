# ============================================================================
# NOTIFICATION SERVICE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Service - Step-ready notifications
# PURPOSE: Deliver scheduler notifications to a pluggable sink after commit
# CREATED: 12 OCT 2026
# ============================================================================
"""
Notification Service

The scheduler only produces StepReadyNotification records. Delivering
them is this module's job and happens after the transaction commits, so
a failing sink can never roll back a step transition.

Sinks:
    LoggingNotificationSink  - default, writes one log line per notification
    WebhookNotificationSink  - POSTs JSON to WORKFLOW_NOTIFICATION_WEBHOOK_URL
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import httpx

from core.config import NotificationDefaults, get_defaults
from orchestrator.engine.scheduler import StepReadyNotification

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSink(Protocol):
    """Anything that can deliver a step-ready notification."""

    async def send(self, notification: StepReadyNotification) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def send(self, notification: StepReadyNotification) -> None:
        target = notification.assigned_to or f"role:{notification.role_scope.value}"
        logger.log(
            self.level,
            f"Step ready: {notification.title} ({notification.step_id}) "
            f"instance={notification.instance_id} -> {target}",
        )


class WebhookNotificationSink:
    """POSTs notifications as JSON to a webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = httpx.Timeout(timeout)
        self._client = client

    async def send(self, notification: StepReadyNotification) -> None:
        payload = notification.to_dict()
        if self._client is not None:
            response = await self._client.post(self.url, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
        response.raise_for_status()
        logger.debug(f"Delivered {notification.step_id} to {self.url} ({response.status_code})")


def create_sink(config: Optional[NotificationDefaults] = None) -> NotificationSink:
    """Webhook sink when a URL is configured, logging sink otherwise."""
    config = config or get_defaults().notifications
    if config.webhook_url:
        logger.info(f"Notifications will be posted to {config.webhook_url}")
        return WebhookNotificationSink(config.webhook_url, timeout=config.timeout_seconds)
    return LoggingNotificationSink()


class NotificationService:
    """Fans scheduler notifications out to a sink."""

    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink or create_sink()

    async def send_all(self, notifications: Sequence[StepReadyNotification]) -> Dict[str, Any]:
        """
        Deliver every notification.

        Failures are logged and counted; they never propagate.

        Returns:
            {"sent": n, "failed": n, "errors": [...]}
        """
        sent = 0
        errors: List[Dict[str, str]] = []
        for notification in notifications:
            try:
                await self.sink.send(notification)
                sent += 1
            except Exception as e:
                logger.error(
                    f"Notification for step {notification.step_id} "
                    f"of instance {notification.instance_id} failed: {e}"
                )
                errors.append({"step_id": notification.step_id, "error": str(e)})

        if errors:
            logger.warning(f"{len(errors)} of {len(notifications)} notifications failed")
        return {"sent": sent, "failed": len(errors), "errors": errors}


__all__ = [
    "NotificationSink",
    "LoggingNotificationSink",
    "WebhookNotificationSink",
    "NotificationService",
    "create_sink",
]

"""Best-effort deployment notifications.

A failed notification is logged and dropped; it never affects the
deployment it reports on.
"""

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from .interfaces import NotificationSink

logger = structlog.get_logger(__name__)


class LogNotificationSink:
    """Notification sink that only writes to the log."""

    async def notify(self, workspace_id: str, event: str, payload: dict[str, Any]) -> None:
        logger.info(
            "notification", workspace_id=workspace_id, notification_event=event, payload=payload
        )


class WebhookNotificationSink:
    """POSTs notifications as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._timeout = timeout
        self._client = client

    async def notify(self, workspace_id: str, event: str, payload: dict[str, Any]) -> None:
        body = {
            "event": event,
            "workspace_id": workspace_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "payload": payload,
        }
        if self._client is not None:
            resp = await self._client.post(self.url, json=body, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.url, json=body)
        resp.raise_for_status()
        logger.debug("notification_sent", notification_event=event, workspace_id=workspace_id)


async def emit_notification(
    sink: NotificationSink | None,
    workspace_id: str,
    event: str,
    payload: dict[str, Any],
) -> None:
    if sink is None:
        return
    try:
        await sink.notify(workspace_id, event, payload)
    except Exception as e:
        logger.error(
            "notification_failed",
            notification_event=event,
            workspace_id=workspace_id,
            error=str(e),
        )

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from structlog.testing import capture_logs

from railway_deployer.audit import AuditAction, StructlogAuditSink, emit_audit
from railway_deployer.notifications import (
    LogNotificationSink,
    WebhookNotificationSink,
    emit_notification,
)

WEBHOOK_URL = "https://hooks.example.com/deployments"


@pytest.mark.asyncio
async def test_webhook_posts_event():
    sink = WebhookNotificationSink(WEBHOOK_URL)

    async with respx.mock() as respx_mock:
        route = respx_mock.post(WEBHOOK_URL).mock(return_value=httpx.Response(httpx.codes.OK))

        await sink.notify("ws-1", "deployment.completed", {"status": "success"})

    body = json.loads(route.calls.last.request.content)
    assert body["event"] == "deployment.completed"
    assert body["workspace_id"] == "ws-1"
    assert body["payload"] == {"status": "success"}
    assert "timestamp" in body


@pytest.mark.asyncio
async def test_webhook_uses_injected_client():
    async with respx.mock() as respx_mock, httpx.AsyncClient() as client:
        route = respx_mock.post(WEBHOOK_URL).mock(return_value=httpx.Response(httpx.codes.OK))
        sink = WebhookNotificationSink(WEBHOOK_URL, client=client)

        await sink.notify("ws-1", "bulk_deploy.completed", {})

    assert route.called


@pytest.mark.asyncio
async def test_webhook_error_raises_from_sink():
    sink = WebhookNotificationSink(WEBHOOK_URL)

    async with respx.mock() as respx_mock:
        respx_mock.post(WEBHOOK_URL).mock(
            return_value=httpx.Response(httpx.codes.INTERNAL_SERVER_ERROR)
        )

        with pytest.raises(httpx.HTTPStatusError):
            await sink.notify("ws-1", "deployment.completed", {})


@pytest.mark.asyncio
async def test_emit_notification_swallows_sink_errors():
    sink = MagicMock()
    sink.notify = AsyncMock(side_effect=httpx.ConnectError("down"))

    with capture_logs() as logs:
        await emit_notification(sink, "ws-1", "deployment.completed", {})

    assert logs[0]["event"] == "notification_failed"
    assert logs[0]["notification_event"] == "deployment.completed"

    sink.notify.assert_awaited_once()


@pytest.mark.asyncio
async def test_emit_notification_without_sink():
    await emit_notification(None, "ws-1", "deployment.completed", {})


@pytest.mark.asyncio
async def test_log_sink_logs_event_and_payload():
    with capture_logs() as logs:
        await LogNotificationSink().notify("ws-1", "deployment.completed", {"status": "failed"})

    assert logs == [
        {
            "event": "notification",
            "log_level": "info",
            "workspace_id": "ws-1",
            "notification_event": "deployment.completed",
            "payload": {"status": "failed"},
        }
    ]


@pytest.mark.asyncio
async def test_emit_audit_passes_action_value():
    sink = MagicMock()
    sink.log = AsyncMock()

    await emit_audit(
        sink, "ws-1", "user-1", AuditAction.DOMAIN_ADDED, "railway_service", "svc-1", {"a": 1}
    )

    sink.log.assert_awaited_once_with(
        "ws-1", "user-1", "railway.domain.added", "railway_service", "svc-1", {"a": 1}
    )


@pytest.mark.asyncio
async def test_emit_audit_swallows_sink_errors():
    sink = MagicMock()
    sink.log = AsyncMock(side_effect=RuntimeError("db down"))

    await emit_audit(
        sink, "ws-1", "user-1", AuditAction.ENV_VAR_SET, "railway_service", "svc-1", {}
    )


@pytest.mark.asyncio
async def test_structlog_audit_sink():
    await StructlogAuditSink().log(
        "ws-1", "user-1", "railway.service.deployed", "railway_deployment", "dep-1", {}
    )

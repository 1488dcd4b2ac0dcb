from unittest.mock import AsyncMock, MagicMock

import pytest

from railway_deployer.errors import ReadinessTimeoutError
from railway_deployer.readiness import ServiceReadinessPoller

TOKEN = "rw_test_token_abc123"  # noqa: S105


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.execute = AsyncMock()
    return executor


@pytest.mark.asyncio
async def test_returns_once_status_is_active(executor, make_result):
    executor.execute.side_effect = [
        make_result(stdout='{"status": "DEPLOYING"}'),
        make_result(stdout="not json at all"),
        make_result(stdout='{"status": "ACTIVE"}'),
    ]
    poller = ServiceReadinessPoller(executor, poll_interval_ms=1)

    await poller.wait_until_ready(TOKEN, "svc-db", timeout_ms=5_000)

    assert executor.execute.await_count == 3
    request = executor.execute.call_args[0][0]
    assert request.command == "status"
    assert request.service == "svc-db"
    assert request.flags == ["--json"]


@pytest.mark.asyncio
async def test_status_match_is_case_insensitive(executor, make_result):
    executor.execute.return_value = make_result(stdout='{"status": "active"}')
    poller = ServiceReadinessPoller(executor, poll_interval_ms=1)

    await poller.wait_until_ready(TOKEN, "svc-db", timeout_ms=1_000)

    assert executor.execute.await_count == 1


@pytest.mark.asyncio
async def test_failed_status_command_counts_as_not_ready(executor, make_result):
    executor.execute.side_effect = [
        make_result(exit_code=1, stderr="boom", stdout='{"status": "ACTIVE"}'),
        make_result(stdout='{"status": "ACTIVE"}'),
    ]
    poller = ServiceReadinessPoller(executor, poll_interval_ms=1)

    await poller.wait_until_ready(TOKEN, "svc-db", timeout_ms=5_000)

    assert executor.execute.await_count == 2


@pytest.mark.asyncio
async def test_raises_after_deadline(executor, make_result):
    executor.execute.return_value = make_result(stdout='{"status": "BUILDING"}')
    poller = ServiceReadinessPoller(executor, poll_interval_ms=10)

    with pytest.raises(ReadinessTimeoutError, match="did not become ready within 50ms"):
        await poller.wait_until_ready(TOKEN, "svc-db", timeout_ms=50)

    assert executor.execute.await_count >= 2


@pytest.mark.asyncio
async def test_readiness_timeout_is_a_timeout_error(executor, make_result):
    executor.execute.return_value = make_result(stdout="{}")
    poller = ServiceReadinessPoller(executor, poll_interval_ms=5)

    with pytest.raises(TimeoutError):
        await poller.wait_until_ready(TOKEN, "svc-db", timeout_ms=20)

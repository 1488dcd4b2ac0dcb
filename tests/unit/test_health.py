from unittest.mock import AsyncMock, MagicMock

import pytest

from railway_deployer.health import check_health

TOKEN = "rw_test_token_abc123"  # noqa: S105


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.execute = AsyncMock()
    return executor


@pytest.mark.asyncio
async def test_connected_with_username(executor, make_result):
    executor.execute.return_value = make_result(stdout="Logged in as testuser (test@example.com)")

    status = await check_health(executor, TOKEN)

    assert status.connected is True
    assert status.username == "testuser"
    assert status.error is None
    assert executor.execute.call_args[0][0].command == "whoami"


@pytest.mark.asyncio
async def test_unparsed_output_used_as_username(executor, make_result):
    executor.execute.return_value = make_result(stdout="  deploy-bot  \n")

    status = await check_health(executor, TOKEN)

    assert status.connected is True
    assert status.username == "deploy-bot"


@pytest.mark.asyncio
async def test_invalid_token(executor, make_result):
    executor.execute.return_value = make_result(exit_code=1, stderr="Unauthorized")

    status = await check_health(executor, TOKEN)

    assert status.connected is False
    assert status.error == "Unauthorized"


@pytest.mark.asyncio
async def test_non_zero_without_stderr(executor, make_result):
    executor.execute.return_value = make_result(exit_code=1)

    status = await check_health(executor, TOKEN)

    assert status.error == "Not logged in or invalid token"


@pytest.mark.asyncio
async def test_timeout(executor, make_result):
    executor.execute.return_value = make_result(exit_code=143, timed_out=True, duration_ms=120_000)

    status = await check_health(executor, TOKEN)

    assert status.connected is False
    assert status.error == "Health check timed out after 120000ms"


@pytest.mark.asyncio
async def test_never_raises(executor):
    executor.execute.side_effect = RuntimeError("event loop on fire")

    status = await check_health(executor, TOKEN)

    assert status.connected is False
    assert status.error == "event loop on fire"

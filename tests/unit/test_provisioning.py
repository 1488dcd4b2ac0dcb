from unittest.mock import AsyncMock, MagicMock

import pytest

from railway_deployer.errors import ReadinessTimeoutError, UpstreamError
from railway_deployer.models import ServiceKind, ServiceStatus
from railway_deployer.provisioning import ServiceProvisioner, parse_service_id

TOKEN = "rw_test_token_abc123"  # noqa: S105
WORKSPACE_ID = "ws-1"
PROJECT_ID = "proj-1"


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.execute = AsyncMock()
    return executor


@pytest.fixture
def poller():
    poller = MagicMock()
    poller.wait_until_ready = AsyncMock()
    return poller


@pytest.fixture
def audit():
    sink = MagicMock()
    sink.log = AsyncMock()
    return sink


@pytest.fixture
def provisioner(executor, registry, poller, audit):
    return ServiceProvisioner(executor, registry, poller=poller, audit=audit)


async def _provision(provisioner, **kwargs):
    return await provisioner.provision_database(
        TOKEN,
        workspace_id=WORKSPACE_ID,
        project_id=PROJECT_ID,
        platform_project_id="rw-proj-1",
        actor_id="user-1",
        name="postgres",
        database_type="postgres",
        **kwargs,
    )


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ('{"id": "svc-json"}', "svc-json"),
        ('{"serviceId": "svc-camel"}', "svc-camel"),
        ("Created Postgres (svc-123abc)", "svc-123abc"),
        (
            "service 3f0c2a4e-1b2c-4d5e-8f90-123456789abc ready",
            "3f0c2a4e-1b2c-4d5e-8f90-123456789abc",
        ),
    ],
)
def test_parse_service_id(output, expected):
    assert parse_service_id(output) == expected


def test_parse_service_id_placeholder():
    assert parse_service_id("Done!").startswith("cli-provisioned-")


@pytest.mark.asyncio
async def test_provision_registers_active_database(
    provisioner, executor, registry, poller, audit, make_result
):
    executor.execute.return_value = make_result(stdout='{"id": "svc-pg"}')

    service = await _provision(provisioner)

    request = executor.execute.call_args[0][0]
    assert request.command == "add"
    assert request.args == ["--database", "postgres"]
    assert request.flags == ["-y"]

    assert service.platform_service_id == "svc-pg"
    assert service.deploy_order == 0
    assert service.kind == ServiceKind.DATABASE
    assert service.status == ServiceStatus.ACTIVE
    stored = await registry.get(service.id, WORKSPACE_ID)
    assert stored.status == ServiceStatus.ACTIVE

    poller.wait_until_ready.assert_awaited_once()
    assert poller.wait_until_ready.call_args[0][1] == "svc-pg"
    assert audit.log.call_args[0][2] == "railway.service.provisioned"


@pytest.mark.asyncio
async def test_provision_without_waiting(provisioner, executor, poller, make_result):
    executor.execute.return_value = make_result(stdout='{"id": "svc-pg"}')

    service = await _provision(provisioner, wait_for_ready=False)

    poller.wait_until_ready.assert_not_called()
    assert service.status == ServiceStatus.ACTIVE


@pytest.mark.asyncio
async def test_cli_failure_raises_and_registers_nothing(
    provisioner, executor, registry, make_result
):
    executor.execute.return_value = make_result(exit_code=1, stderr="plan limit reached")

    with pytest.raises(UpstreamError, match="plan limit reached"):
        await _provision(provisioner)

    assert await registry.list_for_project(PROJECT_ID, WORKSPACE_ID) == []


@pytest.mark.asyncio
async def test_readiness_timeout_marks_service_failed(
    provisioner, executor, registry, poller, make_result
):
    executor.execute.return_value = make_result(stdout='{"id": "svc-pg"}')
    poller.wait_until_ready.side_effect = ReadinessTimeoutError("not ready")

    with pytest.raises(ReadinessTimeoutError):
        await _provision(provisioner)

    services = await registry.list_for_project(PROJECT_ID, WORKSPACE_ID)
    assert len(services) == 1
    assert services[0].status == ServiceStatus.FAILED


@pytest.mark.asyncio
async def test_connection_info_has_names_only(provisioner, executor, make_service, make_result):
    executor.execute.return_value = make_result(
        stdout='{"DATABASE_URL": "postgres://u:p@h/db", "PGHOST": "h"}'
    )
    service = make_service("postgres", kind=ServiceKind.DATABASE)

    info = await provisioner.get_connection_info(TOKEN, service)

    assert [v.name for v in info.connection_variables] == ["DATABASE_URL", "PGHOST"]
    assert "postgres://" not in info.model_dump_json()

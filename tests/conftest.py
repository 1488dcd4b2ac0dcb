from pathlib import Path
import stat
import sys
import textwrap

import pytest

from railway_deployer.config import Settings, get_settings
from railway_deployer.models import (
    CommandExecutionResult,
    Service,
    ServiceKind,
    ServiceStatus,
)
from railway_deployer.stores import InMemoryDeploymentLedger, InMemoryServiceRegistry

TOKEN = "rw_test_token_abc123"  # noqa: S105
WORKSPACE_ID = "ws-1"
PROJECT_ID = "proj-1"
ACTOR_ID = "user-1"


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        sandbox_home=str(tmp_path / "sandbox-home"),
        kill_grace_ms=200,
        readiness_poll_interval_ms=10,
    )


@pytest.fixture
def registry():
    return InMemoryServiceRegistry()


@pytest.fixture
def ledger():
    return InMemoryDeploymentLedger()


@pytest.fixture
def make_result():
    def _make(
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        duration_ms: int = 25,
        timed_out: bool = False,
    ) -> CommandExecutionResult:
        return CommandExecutionResult(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_ms=duration_ms,
            timed_out=timed_out,
        )

    return _make


@pytest.fixture
def make_service():
    def _make(name: str, deploy_order: int = 0, kind: ServiceKind = ServiceKind.API, **kwargs):
        return Service(
            workspace_id=kwargs.pop("workspace_id", WORKSPACE_ID),
            project_id=kwargs.pop("project_id", PROJECT_ID),
            platform_service_id=kwargs.pop("platform_service_id", f"svc-{name}"),
            name=name,
            kind=kind,
            status=kwargs.pop("status", ServiceStatus.ACTIVE),
            deploy_order=deploy_order,
            **kwargs,
        )

    return _make


@pytest.fixture
def fake_cli(tmp_path):
    """Write an executable Python script that stands in for the Railway CLI."""

    def _write(body: str, name: str = "railway") -> Path:
        path = tmp_path / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _write

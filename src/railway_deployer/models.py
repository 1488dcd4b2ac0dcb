from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
import uuid

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class ServiceKind(str, Enum):
    WEB = "web"
    API = "api"
    WORKER = "worker"
    DATABASE = "database"
    CACHE = "cache"
    CRON = "cron"


class ServiceStatus(str, Enum):
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    DEPLOYING = "deploying"
    FAILED = "failed"


class DeploymentStatus(str, Enum):
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not DeploymentStatus.BUILDING


class TriggerType(str, Enum):
    MANUAL = "manual"
    REDEPLOY = "redeploy"
    ROLLBACK = "rollback"


class Service(BaseModel):
    """A deployable unit within a project."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    workspace_id: str
    project_id: str
    platform_project_id: str | None = None
    platform_service_id: str = ""
    name: str
    kind: ServiceKind
    status: ServiceStatus = ServiceStatus.PROVISIONING
    deploy_order: int = Field(default=0, ge=0)
    config: dict[str, Any] = Field(default_factory=dict)
    resource_info: dict[str, Any] = Field(default_factory=dict)
    deployment_url: str | None = None
    custom_domain: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class DeploymentRecord(BaseModel):
    """One attempt to put a service into a running state."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    service_id: str
    workspace_id: str
    project_id: str
    platform_deployment_id: str
    status: DeploymentStatus = DeploymentStatus.BUILDING
    trigger_type: TriggerType = TriggerType.MANUAL
    triggered_by: str
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    build_duration_seconds: int | None = None
    deploy_duration_seconds: int | None = None
    deployment_url: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


OutputCallback = Callable[[str, Literal["stdout", "stderr"]], None]


@dataclass
class CommandRequest:
    """A single Railway CLI invocation."""

    command: str
    token: str = field(repr=False)
    cwd: str | None = None
    args: list[str] = field(default_factory=list)
    service: str | None = None
    environment: str | None = None
    flags: list[str] = field(default_factory=list)
    timeout_ms: int | None = None
    on_output: OutputCallback | None = None


@dataclass(frozen=True)
class CommandExecutionResult:
    """Outcome of one sandboxed CLI invocation. Output is already sanitized."""

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class ServiceDeployOutcome(BaseModel):
    service_id: str
    service_name: str
    deploy_order: int
    status: DeploymentStatus
    deployment_id: str | None = None
    deployment_url: str | None = None
    error: str | None = None


class BulkDeployResult(BaseModel):
    deployment_id: str
    services: list[ServiceDeployOutcome]
    started_at: datetime
    completed_at: datetime
    status: Literal["success", "partial_failure", "failed"]


class VariableInfo(BaseModel):
    """A service variable as exposed to callers: name only, value never included."""

    name: str
    masked: bool = True
    present: bool = True


class ServiceConnectionInfo(BaseModel):
    service_id: str
    service_name: str
    kind: ServiceKind
    connection_variables: list[VariableInfo]


class DnsInstructions(BaseModel):
    type: Literal["CNAME"] = "CNAME"
    name: str
    value: str


class DomainInfo(BaseModel):
    domain: str
    type: Literal["railway", "custom"]
    status: Literal["active", "pending_dns", "pending_ssl", "error"]
    dns_instructions: DnsInstructions | None = None


class HealthStatus(BaseModel):
    connected: bool
    username: str | None = None
    error: str | None = None


class DeploymentHistoryPage(BaseModel):
    deployments: list[DeploymentRecord]
    total: int
    page: int
    limit: int


# === Platform API DTOs ===


class PlatformEnvironment(BaseModel):
    id: str
    name: str


class PlatformProject(BaseModel):
    id: str
    name: str
    description: str | None = None
    project_url: str
    environments: list[PlatformEnvironment] = Field(default_factory=list)
    created_at: str | None = None


class PlatformDeployment(BaseModel):
    id: str
    status: str
    project_id: str | None = None
    environment_id: str | None = None
    deployment_url: str | None = None
    branch: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    meta: dict[str, Any] | None = None


class PlatformDeploymentList(BaseModel):
    deployments: list[PlatformDeployment]
    total: int


class PlatformDomain(BaseModel):
    domain: str
    dns_status: str

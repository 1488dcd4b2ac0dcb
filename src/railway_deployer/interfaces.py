"""Collaborator protocols consumed by the deployer core.

Concrete implementations live in ``stores``, ``platform_client``, ``audit``
and ``notifications``; anything structurally compatible can be injected.
"""

from typing import Any, Protocol

from .models import (
    DeploymentRecord,
    DeploymentStatus,
    PlatformDeployment,
    PlatformDeploymentList,
    PlatformDomain,
    PlatformProject,
    Service,
)


class ServiceRegistry(Protocol):
    """Persistence for Service entities."""

    async def create(self, service: Service) -> Service: ...

    async def save(self, service: Service) -> Service: ...

    async def get(self, service_id: str, workspace_id: str) -> Service | None: ...

    async def list_for_project(self, project_id: str, workspace_id: str) -> list[Service]:
        """Services of a project ordered by deploy_order ascending."""
        ...


class DeploymentLedger(Protocol):
    """Persistence for DeploymentRecord entities."""

    async def create(self, record: DeploymentRecord) -> DeploymentRecord: ...

    async def save(self, record: DeploymentRecord) -> DeploymentRecord: ...

    async def get(self, record_id: str, workspace_id: str) -> DeploymentRecord | None: ...

    async def list_for_service(
        self,
        service_id: str,
        *,
        status: DeploymentStatus | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[DeploymentRecord], int]:
        """Newest first, with the unpaginated total."""
        ...


class PlatformAPIClient(Protocol):
    """Railway remote API, used for what the CLI cannot do."""

    async def create_project(
        self, token: str, name: str, description: str | None = None
    ) -> PlatformProject: ...

    async def link_repository(self, token: str, project_id: str, repo_full_name: str) -> None: ...

    async def trigger_deployment(
        self,
        token: str,
        project_id: str,
        environment_id: str | None = None,
        branch: str | None = None,
    ) -> PlatformDeployment: ...

    async def get_deployment(self, token: str, deployment_id: str) -> PlatformDeployment | None: ...

    async def list_deployments(
        self,
        token: str,
        project_id: str,
        environment_id: str | None = None,
        first: int = 10,
        after: str | None = None,
    ) -> PlatformDeploymentList: ...

    async def redeploy_deployment(self, token: str, deployment_id: str) -> PlatformDeployment: ...

    async def upsert_variables(
        self,
        token: str,
        project_id: str,
        environment_id: str,
        variables: dict[str, str],
    ) -> None: ...

    async def list_domains(self, token: str, service_id: str) -> list[PlatformDomain]: ...

    async def delete_domain(self, token: str, domain_id: str) -> None: ...


class AuditSink(Protocol):
    async def log(
        self,
        workspace_id: str,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: dict[str, Any],
    ) -> None: ...


class NotificationSink(Protocol):
    async def notify(self, workspace_id: str, event: str, payload: dict[str, Any]) -> None: ...

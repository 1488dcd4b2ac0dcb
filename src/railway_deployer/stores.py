"""In-memory ServiceRegistry and DeploymentLedger.

Used by the CLI (state lives for one invocation) and by tests. Entities are
copied on the way in and out so callers never share mutable state with the
store.
"""

import asyncio
from datetime import UTC, datetime

from .errors import ConflictError, NotFoundError
from .models import DeploymentRecord, DeploymentStatus, Service


class InMemoryServiceRegistry:
    def __init__(self, services: list[Service] | None = None) -> None:
        self._services: dict[str, Service] = {}
        self._lock = asyncio.Lock()
        for service in services or []:
            self._services[service.id] = service.model_copy(deep=True)

    async def create(self, service: Service) -> Service:
        async with self._lock:
            if service.id in self._services:
                raise ConflictError(f"Service {service.id} already exists")
            self._services[service.id] = service.model_copy(deep=True)
        return service

    async def save(self, service: Service) -> Service:
        service.updated_at = datetime.now(UTC)
        async with self._lock:
            self._services[service.id] = service.model_copy(deep=True)
        return service

    async def get(self, service_id: str, workspace_id: str) -> Service | None:
        stored = self._services.get(service_id)
        if stored is None or stored.workspace_id != workspace_id:
            return None
        return stored.model_copy(deep=True)

    async def list_for_project(self, project_id: str, workspace_id: str) -> list[Service]:
        matches = [
            s
            for s in self._services.values()
            if s.project_id == project_id and s.workspace_id == workspace_id
        ]
        matches.sort(key=lambda s: (s.deploy_order, s.created_at))
        return [s.model_copy(deep=True) for s in matches]


class InMemoryDeploymentLedger:
    """Deployment records. A record that reached a terminal status is frozen."""

    def __init__(self) -> None:
        self._records: dict[str, DeploymentRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: DeploymentRecord) -> DeploymentRecord:
        async with self._lock:
            if record.id in self._records:
                raise ConflictError(f"Deployment {record.id} already exists")
            self._records[record.id] = record.model_copy(deep=True)
        return record

    async def save(self, record: DeploymentRecord) -> DeploymentRecord:
        async with self._lock:
            stored = self._records.get(record.id)
            if stored is None:
                raise NotFoundError(f"Deployment {record.id} not found")
            if stored.status.is_terminal and stored != record:
                raise ConflictError(
                    f"Deployment {record.id} is {stored.status.value} and can no longer change"
                )
            self._records[record.id] = record.model_copy(deep=True)
        return record

    async def get(self, record_id: str, workspace_id: str) -> DeploymentRecord | None:
        stored = self._records.get(record_id)
        if stored is None or stored.workspace_id != workspace_id:
            return None
        return stored.model_copy(deep=True)

    async def list_for_service(
        self,
        service_id: str,
        *,
        status: DeploymentStatus | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[DeploymentRecord], int]:
        matches = [
            r
            for r in self._records.values()
            if r.service_id == service_id and (status is None or r.status == status)
        ]
        matches.sort(key=lambda r: r.started_at, reverse=True)
        page = matches[offset : offset + limit]
        return [r.model_copy(deep=True) for r in page], len(matches)

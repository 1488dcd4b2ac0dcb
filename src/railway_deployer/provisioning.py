"""Database and cache provisioning through ``railway add``."""

import json
import re
import uuid

import structlog

from .audit import AuditAction, emit_audit
from .deployer import failure_message
from .errors import ReadinessTimeoutError, UpstreamError
from .executor import CommandExecutor
from .interfaces import AuditSink, ServiceRegistry
from .models import (
    CommandRequest,
    Service,
    ServiceConnectionInfo,
    ServiceKind,
    ServiceStatus,
    VariableInfo,
)
from .readiness import DEFAULT_READY_TIMEOUT_MS, ServiceReadinessPoller
from .variables import parse_variable_names

logger = structlog.get_logger(__name__)

_PAREN_ID_PATTERN = re.compile(r"\(([a-zA-Z0-9-]+)\)")
_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


def parse_service_id(output: str) -> str:
    """Platform service id from ``railway add`` output.

    JSON output is preferred (``{"id": ...}`` or ``{"serviceId": ...}``);
    text output falls back to an id in parentheses, then any UUID. When
    nothing matches a local placeholder is returned.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        for key in ("serviceId", "service_id", "id"):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]

    match = _PAREN_ID_PATTERN.search(output)
    if match:
        return match.group(1)

    match = _UUID_PATTERN.search(output)
    if match:
        return match.group(0)

    return f"cli-provisioned-{uuid.uuid4().hex[:12]}"


class ServiceProvisioner:
    def __init__(
        self,
        executor: CommandExecutor,
        registry: ServiceRegistry,
        poller: ServiceReadinessPoller | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._poller = poller
        self._audit = audit

    async def provision_database(
        self,
        token: str,
        *,
        workspace_id: str,
        project_id: str,
        platform_project_id: str,
        actor_id: str,
        name: str,
        database_type: str,
        kind: ServiceKind = ServiceKind.DATABASE,
        wait_for_ready: bool = True,
        ready_timeout_ms: int = DEFAULT_READY_TIMEOUT_MS,
    ) -> Service:
        """Provision a database service and register it at deploy order 0.

        Raises:
            UpstreamError: ``railway add`` failed or timed out.
            ReadinessTimeoutError: the service never became active; it is
                left in ``failed``.
        """
        logger.info(
            "database_provisioning_starting",
            project_id=project_id,
            name=name,
            database_type=database_type,
        )

        result = await self._executor.execute(
            CommandRequest(
                command="add",
                token=token,
                args=["--database", database_type],
                flags=["-y"],
            )
        )
        if not result.ok:
            message = failure_message(result, "Provisioning")
            logger.error("database_provisioning_failed", name=name, error=message)
            raise UpstreamError(f"Provisioning failed: {message}")

        service = Service(
            workspace_id=workspace_id,
            project_id=project_id,
            platform_project_id=platform_project_id,
            platform_service_id=parse_service_id(result.stdout),
            name=name,
            kind=kind,
            status=ServiceStatus.PROVISIONING,
            deploy_order=0,
            resource_info={"database_type": database_type},
        )
        await self._registry.create(service)

        if wait_for_ready and self._poller is not None:
            try:
                await self._poller.wait_until_ready(
                    token, service.platform_service_id, timeout_ms=ready_timeout_ms
                )
            except ReadinessTimeoutError:
                service.status = ServiceStatus.FAILED
                await self._registry.save(service)
                raise

        service.status = ServiceStatus.ACTIVE
        await self._registry.save(service)

        await emit_audit(
            self._audit,
            workspace_id,
            actor_id,
            AuditAction.SERVICE_PROVISIONED,
            "railway_service",
            service.id,
            {
                "project_id": project_id,
                "platform_project_id": platform_project_id,
                "platform_service_id": service.platform_service_id,
                "database_type": database_type,
                "service_name": name,
                "service_kind": kind.value,
            },
        )
        return service

    async def get_connection_info(self, token: str, service: Service) -> ServiceConnectionInfo:
        """Connection variable names for a service. Values are never returned."""
        result = await self._executor.execute(
            CommandRequest(
                command="variable",
                token=token,
                args=["list"],
                service=service.platform_service_id,
                flags=["--json"],
            )
        )

        names: list[str] = []
        if result.ok and result.stdout:
            names = parse_variable_names(result.stdout) or []

        return ServiceConnectionInfo(
            service_id=service.id,
            service_name=service.name,
            kind=service.kind,
            connection_variables=[VariableInfo(name=n) for n in names],
        )

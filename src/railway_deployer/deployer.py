"""Single-service deployment operations.

``deploy`` and ``redeploy`` own one DeploymentRecord each: it is created in
``building`` and moved exactly once to ``success`` or ``failed``. A failed
CLI run is recorded in the ledger, it is not raised. If a collaborator raises
mid-attempt the record is still moved to ``failed`` before the error
propagates. ``restart`` is an operational action and never touches the
ledger. ``rollback`` asks the platform API to redeploy an earlier
deployment and records the attempt as a new record that points back at its
source.
"""

from collections.abc import Callable
from datetime import UTC, datetime
import re
import time
import uuid

import structlog

from .audit import AuditAction, emit_audit
from .errors import ConflictError, NotFoundError, UpstreamError
from .executor import CommandExecutor
from .interfaces import (
    AuditSink,
    DeploymentLedger,
    NotificationSink,
    PlatformAPIClient,
    ServiceRegistry,
)
from .models import (
    CommandExecutionResult,
    CommandRequest,
    DeploymentHistoryPage,
    DeploymentRecord,
    DeploymentStatus,
    Service,
    ServiceStatus,
    TriggerType,
)
from .notifications import emit_notification

logger = structlog.get_logger(__name__)

DEPLOYMENT_URL_PATTERN = re.compile(r"https?://[^\s]+\.up\.railway\.app[^\s]*")


def extract_deployment_url(stdout: str) -> str | None:
    match = DEPLOYMENT_URL_PATTERN.search(stdout)
    return match.group(0) if match else None


def failure_message(result: CommandExecutionResult, action: str) -> str:
    """Human-readable error for a failed CLI result (stderr is already sanitized)."""
    if result.timed_out:
        return f"{action} timed out after {result.duration_ms}ms"
    return result.stderr or f"Unknown {action.lower()} error"


class SingleServiceDeployer:
    def __init__(
        self,
        executor: CommandExecutor,
        registry: ServiceRegistry,
        ledger: DeploymentLedger,
        platform: PlatformAPIClient | None = None,
        audit: AuditSink | None = None,
        notifications: NotificationSink | None = None,
        reject_concurrent_deploys: bool = False,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._ledger = ledger
        self._platform = platform
        self._audit = audit
        self._notifications = notifications
        self._reject_concurrent = reject_concurrent_deploys

    async def deploy(
        self,
        token: str,
        service: Service,
        *,
        workspace_id: str,
        actor_id: str,
        environment: str | None = None,
    ) -> DeploymentRecord:
        """Run ``railway up`` for the service and record the outcome."""
        return await self._run_deployment(
            token,
            service,
            verb="up",
            trigger=TriggerType.MANUAL,
            workspace_id=workspace_id,
            actor_id=actor_id,
            environment=environment,
        )

    async def redeploy(
        self,
        token: str,
        service: Service,
        *,
        workspace_id: str,
        actor_id: str,
        environment: str | None = None,
    ) -> DeploymentRecord:
        """Run ``railway redeploy`` for the service and record the outcome."""
        return await self._run_deployment(
            token,
            service,
            verb="redeploy",
            trigger=TriggerType.REDEPLOY,
            workspace_id=workspace_id,
            actor_id=actor_id,
            environment=environment,
        )

    async def restart(self, token: str, service: Service) -> None:
        """Restart the running service. No deployment record is created.

        Raises:
            UpstreamError: on non-zero exit or timeout.
        """
        logger.info("service_restart_starting", service_id=service.id, service_name=service.name)

        result = await self._executor.execute(
            CommandRequest(command="restart", token=token, service=service.platform_service_id)
        )
        if not result.ok:
            message = failure_message(result, "Restart")
            logger.error("service_restart_failed", service_id=service.id, error=message)
            raise UpstreamError(f"Restart failed: {message}")

        logger.info("service_restarted", service_id=service.id)

    async def rollback(
        self,
        token: str,
        service: Service,
        target_deployment_id: str,
        *,
        workspace_id: str,
        actor_id: str,
    ) -> DeploymentRecord:
        """Redeploy an earlier deployment and record it as a new rollback record.

        Raises:
            NotFoundError: target deployment does not exist in this workspace.
            UpstreamError: the platform rejected the redeploy.
        """
        target = await self._ledger.get(target_deployment_id, workspace_id)
        if target is None or target.service_id != service.id:
            raise NotFoundError(f"Deployment {target_deployment_id} not found")
        if self._platform is None:
            raise UpstreamError("Rollback requires a platform API client")
        self._ensure_not_deploying(service)

        logger.info(
            "deployment_rollback_starting",
            service_id=service.id,
            target_deployment_id=target_deployment_id,
        )

        redeployed = await self._platform.redeploy_deployment(token, target.platform_deployment_id)

        record = DeploymentRecord(
            service_id=service.id,
            workspace_id=workspace_id,
            project_id=service.project_id,
            platform_deployment_id=redeployed.id,
            status=DeploymentStatus.BUILDING,
            trigger_type=TriggerType.ROLLBACK,
            triggered_by=actor_id,
            metadata={
                "rollback_from_deployment_id": target.id,
                "rollback_from_platform_deployment_id": target.platform_deployment_id,
            },
        )
        await self._ledger.create(record)

        service.status = ServiceStatus.DEPLOYING
        await self._registry.save(service)

        await emit_audit(
            self._audit,
            workspace_id,
            actor_id,
            AuditAction.DEPLOYMENT_ROLLED_BACK,
            "railway_deployment",
            record.id,
            {
                "service_id": service.id,
                "service_name": service.name,
                "rollback_from_deployment_id": target.id,
                "new_deployment_id": record.id,
                "project_id": service.project_id,
            },
        )
        return record

    async def stream_logs(
        self,
        token: str,
        service: Service,
        *,
        build_logs: bool = False,
        lines: int | None = None,
        on_log: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Fetch recent service logs. Lines are sanitized by the executor.

        Raises:
            UpstreamError: on non-zero exit or timeout.
        """
        flags: list[str] = []
        if build_logs:
            flags.append("--build")
        if lines:
            flags.extend(["-n", str(lines)])

        result = await self._executor.execute(
            CommandRequest(
                command="logs",
                token=token,
                service=service.platform_service_id,
                flags=flags,
            )
        )
        if result.timed_out:
            raise UpstreamError(f"Log streaming timed out after {result.duration_ms}ms")
        if result.exit_code != 0:
            raise UpstreamError(f"Failed to stream logs: {result.stderr or 'Unknown error'}")

        log_lines = [line for line in result.stdout.split("\n") if line]
        if on_log is not None:
            for line in log_lines:
                on_log(line)
        return log_lines

    async def get_deployment(self, deployment_id: str, workspace_id: str) -> DeploymentRecord:
        record = await self._ledger.get(deployment_id, workspace_id)
        if record is None:
            raise NotFoundError(f"Deployment {deployment_id} not found")
        return record

    async def get_deployment_history(
        self,
        service_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        status: DeploymentStatus | None = None,
    ) -> DeploymentHistoryPage:
        page = max(page, 1)
        limit = max(limit, 1)
        records, total = await self._ledger.list_for_service(
            service_id, status=status, offset=(page - 1) * limit, limit=limit
        )
        return DeploymentHistoryPage(deployments=records, total=total, page=page, limit=limit)

    def _ensure_not_deploying(self, service: Service) -> None:
        if self._reject_concurrent and service.status == ServiceStatus.DEPLOYING:
            raise ConflictError(f"Service {service.name} is already deploying")

    async def _run_deployment(
        self,
        token: str,
        service: Service,
        *,
        verb: str,
        trigger: TriggerType,
        workspace_id: str,
        actor_id: str,
        environment: str | None,
    ) -> DeploymentRecord:
        self._ensure_not_deploying(service)

        log = logger.bind(service_id=service.id, service_name=service.name, trigger=trigger.value)
        log.info("service_deploy_starting", environment=environment)

        start = time.monotonic()
        record = DeploymentRecord(
            service_id=service.id,
            workspace_id=workspace_id,
            project_id=service.project_id,
            platform_deployment_id=f"cli-{verb}-{uuid.uuid4().hex[:12]}",
            status=DeploymentStatus.BUILDING,
            trigger_type=trigger,
            triggered_by=actor_id,
        )
        await self._ledger.create(record)

        try:
            duration_seconds = await self._execute_and_finalize(
                token,
                service,
                record,
                verb=verb,
                trigger=trigger,
                environment=environment,
                start=start,
                log=log,
            )
        except Exception as e:
            log.exception("service_deploy_raised", error_type=type(e).__name__)
            await self._mark_failed(service, record, f"{type(e).__name__}: {e}", start, log)
            raise

        await emit_audit(
            self._audit,
            workspace_id,
            actor_id,
            AuditAction.SERVICE_DEPLOYED,
            "railway_deployment",
            record.id,
            {
                "service_id": service.id,
                "service_name": service.name,
                "service_kind": service.kind.value,
                "action": verb,
                "status": record.status.value,
                "duration_seconds": duration_seconds,
                "project_id": service.project_id,
            },
        )
        await emit_notification(
            self._notifications,
            workspace_id,
            "deployment.completed",
            {
                "service_id": service.id,
                "service_name": service.name,
                "deployment_id": record.id,
                "status": record.status.value,
                "deployment_url": record.deployment_url,
            },
        )
        return record

    async def _execute_and_finalize(
        self,
        token: str,
        service: Service,
        record: DeploymentRecord,
        *,
        verb: str,
        trigger: TriggerType,
        environment: str | None,
        start: float,
        log: structlog.stdlib.BoundLogger,
    ) -> int:
        service.status = ServiceStatus.DEPLOYING
        await self._registry.save(service)

        result = await self._executor.execute(
            CommandRequest(
                command=verb,
                token=token,
                service=service.platform_service_id,
                environment=environment,
            )
        )

        duration_seconds = round(time.monotonic() - start)
        record.completed_at = datetime.now(UTC)
        record.build_duration_seconds = duration_seconds

        if result.ok:
            record.status = DeploymentStatus.SUCCESS
            record.deploy_duration_seconds = duration_seconds
            url = extract_deployment_url(result.stdout)
            if url:
                record.deployment_url = url
                service.deployment_url = url
            service.status = ServiceStatus.ACTIVE
            log.info("service_deployed", duration_seconds=duration_seconds, url=url)
        else:
            action = "Deployment" if trigger is TriggerType.MANUAL else "Redeployment"
            record.status = DeploymentStatus.FAILED
            record.error_message = failure_message(result, action)
            service.status = ServiceStatus.FAILED
            log.error(
                "service_deploy_failed",
                exit_code=result.exit_code,
                timed_out=result.timed_out,
                duration_seconds=duration_seconds,
            )

        await self._registry.save(service)
        await self._ledger.save(record)
        return duration_seconds

    async def _mark_failed(
        self,
        service: Service,
        record: DeploymentRecord,
        error: str,
        start: float,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        """Move an interrupted attempt to ``failed``. Store errors here are logged only."""
        record.status = DeploymentStatus.FAILED
        record.error_message = error
        record.completed_at = datetime.now(UTC)
        record.build_duration_seconds = round(time.monotonic() - start)
        service.status = ServiceStatus.FAILED
        try:
            await self._ledger.save(record)
        except Exception:
            log.exception("deployment_record_finalize_failed", deployment_id=record.id)
        try:
            await self._registry.save(service)
        except Exception:
            log.exception("service_status_finalize_failed")

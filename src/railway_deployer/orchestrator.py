"""Dependency-ordered bulk deployment.

Services are grouped by ``deploy_order`` and the groups run one after
another; members of a group deploy concurrently and every member is awaited
even when a sibling fails. A failure in a critical group (deploy order at or
below ``critical_max_deploy_order``) halts the rollout so that nothing is
deployed on top of a broken database or API. A failure in a later group is
reported as a partial failure and leaves earlier deployments in place.
"""

import asyncio
from collections import defaultdict
from datetime import UTC, datetime
import uuid

import structlog

from .audit import AuditAction, emit_audit
from .deployer import SingleServiceDeployer
from .interfaces import AuditSink, DeploymentLedger, NotificationSink, ServiceRegistry
from .models import (
    BulkDeployResult,
    DeploymentRecord,
    DeploymentStatus,
    Service,
    ServiceDeployOutcome,
)
from .notifications import emit_notification

logger = structlog.get_logger(__name__)

DEFAULT_CRITICAL_MAX_DEPLOY_ORDER = 1


def group_by_deploy_order(services: list[Service]) -> list[tuple[int, list[Service]]]:
    groups: dict[int, list[Service]] = defaultdict(list)
    for service in services:
        groups[service.deploy_order].append(service)
    return sorted(groups.items())


class DeploymentOrchestrator:
    def __init__(
        self,
        deployer: SingleServiceDeployer,
        registry: ServiceRegistry,
        ledger: DeploymentLedger,
        audit: AuditSink | None = None,
        notifications: NotificationSink | None = None,
        critical_max_deploy_order: int = DEFAULT_CRITICAL_MAX_DEPLOY_ORDER,
    ) -> None:
        self._deployer = deployer
        self._registry = registry
        self._ledger = ledger
        self._audit = audit
        self._notifications = notifications
        self.critical_max_deploy_order = critical_max_deploy_order

    async def deploy_all(
        self,
        token: str,
        *,
        project_id: str,
        workspace_id: str,
        actor_id: str,
        environment: str | None = None,
    ) -> BulkDeployResult:
        """Deploy every service of a project in dependency order.

        Never raises for failed services; inspect ``status`` and the
        per-service outcomes instead.
        """
        bulk_id = f"bulk-{uuid.uuid4().hex[:12]}"
        started_at = datetime.now(UTC)

        with structlog.contextvars.bound_contextvars(
            operation="bulk_deploy", correlation_id=bulk_id
        ):
            services = await self._registry.list_for_project(project_id, workspace_id)
            logger.info("bulk_deploy_starting", project_id=project_id, service_count=len(services))

            await emit_audit(
                self._audit,
                workspace_id,
                actor_id,
                AuditAction.BULK_DEPLOY_STARTED,
                "railway_deployment",
                bulk_id,
                {
                    "project_id": project_id,
                    "service_count": len(services),
                    "environment": environment,
                },
            )

            outcomes: list[ServiceDeployOutcome] = []
            any_failed = False
            halted_by: list[Service] = []

            for order, group in group_by_deploy_order(services):
                if halted_by:
                    outcomes.extend(
                        await self._cancel_group(group, halted_by, workspace_id, actor_id)
                    )
                    continue

                group_outcomes = await self._deploy_group(
                    token, order, group, workspace_id, actor_id, environment
                )
                outcomes.extend(group_outcomes)

                failed = [
                    svc
                    for svc, outcome in zip(group, group_outcomes, strict=True)
                    if outcome.status == DeploymentStatus.FAILED
                ]
                if failed:
                    any_failed = True
                    if order <= self.critical_max_deploy_order:
                        halted_by = failed
                        logger.warning(
                            "bulk_deploy_halted",
                            deploy_order=order,
                            failed_services=[s.name for s in failed],
                        )

            if halted_by:
                status = "failed"
            elif any_failed:
                status = "partial_failure"
            else:
                status = "success"

            result = BulkDeployResult(
                deployment_id=bulk_id,
                services=outcomes,
                started_at=started_at,
                completed_at=datetime.now(UTC),
                status=status,
            )

            counts = {
                "success_count": _count(outcomes, DeploymentStatus.SUCCESS),
                "failed_count": _count(outcomes, DeploymentStatus.FAILED),
                "cancelled_count": _count(outcomes, DeploymentStatus.CANCELLED),
            }
            logger.info("bulk_deploy_finished", status=status, **counts)

            await emit_audit(
                self._audit,
                workspace_id,
                actor_id,
                AuditAction.BULK_DEPLOY_COMPLETED,
                "railway_deployment",
                bulk_id,
                {
                    "project_id": project_id,
                    "status": status,
                    "service_count": len(services),
                    **counts,
                },
            )
            await emit_notification(
                self._notifications,
                workspace_id,
                "bulk_deploy.completed",
                {"deployment_id": bulk_id, "project_id": project_id, "status": status, **counts},
            )
            return result

    async def _deploy_group(
        self,
        token: str,
        order: int,
        group: list[Service],
        workspace_id: str,
        actor_id: str,
        environment: str | None,
    ) -> list[ServiceDeployOutcome]:
        logger.info("deploy_group_starting", deploy_order=order, services=[s.name for s in group])

        results = await asyncio.gather(
            *(
                self._deployer.deploy(
                    token,
                    svc,
                    workspace_id=workspace_id,
                    actor_id=actor_id,
                    environment=environment,
                )
                for svc in group
            ),
            return_exceptions=True,
        )

        outcomes = []
        for svc, result in zip(group, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "service_deploy_raised",
                    service_id=svc.id,
                    service_name=svc.name,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                outcomes.append(
                    ServiceDeployOutcome(
                        service_id=svc.id,
                        service_name=svc.name,
                        deploy_order=svc.deploy_order,
                        status=DeploymentStatus.FAILED,
                        error=str(result) or "Unknown deployment error",
                    )
                )
                continue

            outcomes.append(
                ServiceDeployOutcome(
                    service_id=svc.id,
                    service_name=svc.name,
                    deploy_order=svc.deploy_order,
                    status=result.status,
                    deployment_id=result.id,
                    deployment_url=result.deployment_url,
                    error=result.error_message,
                )
            )
        return outcomes

    async def _cancel_group(
        self,
        group: list[Service],
        failed: list[Service],
        workspace_id: str,
        actor_id: str,
    ) -> list[ServiceDeployOutcome]:
        reason = "Deployment halted due to earlier failure of " + ", ".join(
            s.name for s in failed
        )
        outcomes = []
        for svc in group:
            record = DeploymentRecord(
                service_id=svc.id,
                workspace_id=workspace_id,
                project_id=svc.project_id,
                platform_deployment_id=f"cancelled-{uuid.uuid4().hex[:12]}",
                status=DeploymentStatus.CANCELLED,
                triggered_by=actor_id,
                completed_at=datetime.now(UTC),
                error_message=reason,
                metadata={"halted_by": [s.id for s in failed]},
            )
            await self._ledger.create(record)
            outcomes.append(
                ServiceDeployOutcome(
                    service_id=svc.id,
                    service_name=svc.name,
                    deploy_order=svc.deploy_order,
                    status=DeploymentStatus.CANCELLED,
                    deployment_id=record.id,
                    error=reason,
                )
            )
        return outcomes


def _count(outcomes: list[ServiceDeployOutcome], status: DeploymentStatus) -> int:
    return sum(1 for o in outcomes if o.status == status)

"""Audit trail helpers.

Audit events are fire-and-forget: ``emit_audit`` logs and swallows any sink
failure so that it can never fail the operation it describes. Payloads carry
identifiers, names and counts only, never credentials or variable values.
"""

from enum import Enum
from typing import Any

import structlog

from .interfaces import AuditSink

logger = structlog.get_logger(__name__)


class AuditAction(str, Enum):
    SERVICE_PROVISIONED = "railway.service.provisioned"
    SERVICE_DEPLOYED = "railway.service.deployed"
    BULK_DEPLOY_STARTED = "railway.bulk_deploy.started"
    BULK_DEPLOY_COMPLETED = "railway.bulk_deploy.completed"
    DEPLOYMENT_ROLLED_BACK = "railway.deployment.rolled_back"
    ENV_VAR_SET = "railway.env_var.set"
    ENV_VAR_DELETED = "railway.env_var.deleted"
    DOMAIN_ADDED = "railway.domain.added"
    DOMAIN_REMOVED = "railway.domain.removed"


class StructlogAuditSink:
    """Writes audit events to the structured log."""

    def __init__(self, logger_name: str = "railway_deployer.audit_trail") -> None:
        self._logger = structlog.get_logger(logger_name)

    async def log(
        self,
        workspace_id: str,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: dict[str, Any],
    ) -> None:
        self._logger.info(
            "audit_event",
            workspace_id=workspace_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata,
        )


async def emit_audit(
    sink: AuditSink | None,
    workspace_id: str,
    actor_id: str,
    action: AuditAction,
    entity_type: str,
    entity_id: str,
    metadata: dict[str, Any],
) -> None:
    if sink is None:
        return
    try:
        await sink.log(workspace_id, actor_id, action.value, entity_type, entity_id, metadata)
    except Exception as e:
        logger.error(
            "audit_log_failed",
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            error=str(e),
        )

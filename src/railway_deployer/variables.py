"""Service variable management.

Variable values go to the CLI process and nowhere else. Return values, log
lines, error messages and audit payloads carry names and counts only.
"""

import json

import structlog

from .audit import AuditAction, emit_audit
from .deployer import SingleServiceDeployer, failure_message
from .errors import UpstreamError
from .executor import CommandExecutor
from .interfaces import AuditSink
from .models import CommandRequest, DeploymentRecord, Service, VariableInfo

logger = structlog.get_logger(__name__)

# shorter values are only masked as part of NAME=value
MIN_BARE_SCRUB_LENGTH = 4


def scrub_value(message: str, name: str, value: str) -> str:
    """Mask a variable value the CLI echoed back in an error message."""
    if not value:
        return message
    message = message.replace(f"{name}={value}", f"{name}=***")
    if len(value) >= MIN_BARE_SCRUB_LENGTH:
        message = message.replace(value, "***")
    return message


def parse_variable_names(stdout: str) -> list[str] | None:
    """Names from ``variable list --json`` output, or None if it isn't a JSON object."""
    try:
        parsed = json.loads(stdout)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return list(parsed.keys())


class VariableManager:
    def __init__(
        self,
        executor: CommandExecutor,
        deployer: SingleServiceDeployer | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self._executor = executor
        self._deployer = deployer
        self._audit = audit

    async def list_variables(self, token: str, service: Service) -> list[VariableInfo]:
        result = await self._executor.execute(
            CommandRequest(
                command="variable",
                token=token,
                args=["list"],
                service=service.platform_service_id,
                flags=["--json"],
            )
        )
        if not result.ok or not result.stdout:
            return []

        names = parse_variable_names(result.stdout)
        if names is None:
            logger.warning("variable_list_unparseable", service_id=service.id)
            return []
        return [VariableInfo(name=name, masked=True, present=True) for name in names]

    async def set_variables(
        self,
        token: str,
        service: Service,
        variables: dict[str, str],
        *,
        workspace_id: str,
        actor_id: str,
        auto_redeploy: bool = False,
    ) -> DeploymentRecord | None:
        """Set each variable with ``railway variable set KEY=VALUE``.

        Returns the deployment record when ``auto_redeploy`` is requested.

        Raises:
            UpstreamError: on the first variable the CLI fails to set.
        """
        names = list(variables)
        logger.info(
            "service_variables_setting",
            service_id=service.id,
            variable_names=names,
            variable_count=len(names),
        )

        for name, value in variables.items():
            result = await self._executor.execute(
                CommandRequest(
                    command="variable",
                    token=token,
                    args=["set", f"{name}={value}"],
                    service=service.platform_service_id,
                )
            )
            if not result.ok:
                message = failure_message(result, "Setting variable")
                message = scrub_value(message, name, value)
                logger.error("service_variable_set_failed", service_id=service.id, variable=name)
                raise UpstreamError(f"Failed to set variable {name}: {message}")

        await emit_audit(
            self._audit,
            workspace_id,
            actor_id,
            AuditAction.ENV_VAR_SET,
            "railway_service",
            service.id,
            {
                "variable_names": names,
                "variable_count": len(names),
                "service_id": service.id,
                "service_name": service.name,
                "project_id": service.project_id,
            },
        )

        if auto_redeploy and self._deployer is not None:
            return await self._deployer.deploy(
                token, service, workspace_id=workspace_id, actor_id=actor_id
            )
        return None

    async def delete_variable(
        self,
        token: str,
        service: Service,
        name: str,
        *,
        workspace_id: str,
        actor_id: str,
    ) -> None:
        """Remove one variable with ``railway variable delete NAME``.

        Raises:
            UpstreamError: on non-zero exit or timeout.
        """
        result = await self._executor.execute(
            CommandRequest(
                command="variable",
                token=token,
                args=["delete", name],
                service=service.platform_service_id,
            )
        )
        if not result.ok:
            message = failure_message(result, "Deleting variable")
            logger.error("service_variable_delete_failed", service_id=service.id, variable=name)
            raise UpstreamError(f"Failed to delete variable {name}: {message}")

        await emit_audit(
            self._audit,
            workspace_id,
            actor_id,
            AuditAction.ENV_VAR_DELETED,
            "railway_service",
            service.id,
            {
                "variable_name": name,
                "service_id": service.id,
                "service_name": service.name,
                "project_id": service.project_id,
            },
        )

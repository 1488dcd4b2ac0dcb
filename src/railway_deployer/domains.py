import json
import re
import uuid

import structlog

from .audit import AuditAction, emit_audit
from .deployer import failure_message
from .errors import UpstreamError
from .executor import CommandExecutor
from .interfaces import AuditSink, PlatformAPIClient, ServiceRegistry
from .models import CommandRequest, DnsInstructions, DomainInfo, Service

logger = structlog.get_logger(__name__)

RAILWAY_DOMAIN_SUFFIX = ".up.railway.app"

_RAILWAY_DOMAIN_PATTERN = re.compile(r"([a-zA-Z0-9-]+\.up\.railway\.app)")
_ANY_DOMAIN_PATTERN = re.compile(r"([a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)+)")

_DNS_STATUS_MAP = {
    "DNS_ACTIVE": "active",
    "ACTIVE": "active",
    "DNS_PENDING": "pending_dns",
    "PENDING": "pending_dns",
    "SSL_PENDING": "pending_ssl",
    "ERROR": "error",
    "FAILED": "error",
}


def parse_generated_domain(output: str) -> str:
    """Domain from ``railway domain`` output: JSON first, then text."""
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("domain"), str):
        return data["domain"]

    match = _RAILWAY_DOMAIN_PATTERN.search(output)
    if match:
        return match.group(1)

    match = _ANY_DOMAIN_PATTERN.search(output)
    if match:
        return match.group(1)

    return f"service-{uuid.uuid4().hex[:8]}{RAILWAY_DOMAIN_SUFFIX}"


def map_dns_status(dns_status: str) -> str:
    return _DNS_STATUS_MAP.get(dns_status, "pending_dns")


def _cname_for(service: Service, domain: str) -> DnsInstructions:
    return DnsInstructions(
        name=domain,
        value=f"{service.platform_service_id}{RAILWAY_DOMAIN_SUFFIX}",
    )


class DomainManager:
    """Adds domains through the CLI; lists and removes them through the platform API."""

    def __init__(
        self,
        executor: CommandExecutor,
        registry: ServiceRegistry,
        platform: PlatformAPIClient,
        audit: AuditSink | None = None,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._platform = platform
        self._audit = audit

    async def add_domain(
        self,
        token: str,
        service: Service,
        *,
        workspace_id: str,
        actor_id: str,
        custom_domain: str | None = None,
    ) -> DomainInfo:
        """Attach a custom domain, or generate a Railway domain when none is given.

        Raises:
            UpstreamError: on non-zero exit or timeout.
        """
        result = await self._executor.execute(
            CommandRequest(
                command="domain",
                token=token,
                args=[custom_domain] if custom_domain else [],
                service=service.platform_service_id,
            )
        )
        if not result.ok:
            message = failure_message(result, "Domain operation")
            logger.error("domain_add_failed", service_id=service.id, error=message)
            raise UpstreamError(f"Failed to add domain: {message}")

        if custom_domain:
            service.custom_domain = custom_domain
            info = DomainInfo(
                domain=custom_domain,
                type="custom",
                status="pending_dns",
                dns_instructions=_cname_for(service, custom_domain),
            )
        else:
            generated = parse_generated_domain(result.stdout)
            service.deployment_url = generated
            info = DomainInfo(domain=generated, type="railway", status="active")
        await self._registry.save(service)

        logger.info("domain_added", service_id=service.id, domain=info.domain, type=info.type)

        await emit_audit(
            self._audit,
            workspace_id,
            actor_id,
            AuditAction.DOMAIN_ADDED,
            "railway_service",
            service.id,
            {
                "service_id": service.id,
                "service_name": service.name,
                "domain": info.domain,
                "domain_type": info.type,
                "project_id": service.project_id,
            },
        )
        return info

    async def remove_domain(
        self,
        token: str,
        service: Service,
        domain: str,
        *,
        workspace_id: str,
        actor_id: str,
    ) -> None:
        await self._platform.delete_domain(token, domain)

        if service.custom_domain == domain:
            service.custom_domain = None
        elif service.deployment_url == domain:
            service.deployment_url = None
        await self._registry.save(service)

        logger.info("domain_removed", service_id=service.id, domain=domain)

        await emit_audit(
            self._audit,
            workspace_id,
            actor_id,
            AuditAction.DOMAIN_REMOVED,
            "railway_service",
            service.id,
            {
                "service_id": service.id,
                "service_name": service.name,
                "domain": domain,
                "project_id": service.project_id,
            },
        )

    async def list_domains(self, token: str, service: Service) -> list[DomainInfo]:
        domains = await self._platform.list_domains(token, service.platform_service_id)

        infos = []
        for entry in domains:
            is_railway = RAILWAY_DOMAIN_SUFFIX in entry.domain
            info = DomainInfo(
                domain=entry.domain,
                type="railway" if is_railway else "custom",
                status=map_dns_status(entry.dns_status),
            )
            if not is_railway and info.status != "active":
                info.dns_instructions = _cname_for(service, entry.domain)
            infos.append(info)
        return infos

"""Railway GraphQL API client.

Used for operations the CLI cannot perform: project creation, deployment
lookup and listing, redeploy by deployment id, variable collection upserts
and domain listing/removal.
"""

from typing import Any

import httpx
import structlog

from .errors import ConflictError, UpstreamError
from .models import (
    PlatformDeployment,
    PlatformDeploymentList,
    PlatformDomain,
    PlatformEnvironment,
    PlatformProject,
)

logger = structlog.get_logger(__name__)

DEFAULT_GRAPHQL_ENDPOINT = "https://backboard.railway.app/graphql/v2"

_CONFLICT_MARKERS = ("already exists", "duplicate", "conflict")

_DEPLOYMENT_STATUS_MAP = {
    "BUILDING": "building",
    "DEPLOYING": "deploying",
    "SUCCESS": "success",
    "FAILED": "failed",
    "CRASHED": "crashed",
    "REMOVED": "removed",
    "QUEUED": "queued",
    "WAITING": "waiting",
}


def map_deployment_status(railway_status: str | None) -> str:
    return _DEPLOYMENT_STATUS_MAP.get(railway_status or "", "unknown")


def _to_deployment(node: dict[str, Any], **defaults: Any) -> PlatformDeployment:
    return PlatformDeployment(
        id=node["id"],
        status=map_deployment_status(node.get("status") or defaults.get("status")),
        project_id=node.get("projectId") or defaults.get("project_id"),
        environment_id=node.get("environmentId") or defaults.get("environment_id"),
        deployment_url=node.get("staticUrl") or None,
        branch=(node.get("meta") or {}).get("branch") or defaults.get("branch"),
        created_at=node.get("createdAt"),
        updated_at=node.get("updatedAt"),
        meta=node.get("meta"),
    )


class RailwayGraphQLClient:
    """Async client for the Railway GraphQL API."""

    def __init__(
        self,
        endpoint: str = DEFAULT_GRAPHQL_ENDPOINT,
        timeout: float = 30.0,
    ) -> None:
        self.endpoint = endpoint
        self._timeout = timeout

    async def _execute(
        self,
        token: str,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self.endpoint,
                    json={"query": query, "variables": variables or {}},
                    headers=headers,
                )
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("railway_api_request_failed", status=status)
            if status == httpx.codes.TOO_MANY_REQUESTS:
                raise UpstreamError(
                    "Railway API rate limit exceeded. Please try again later."
                ) from e
            raise UpstreamError(f"Railway API error: HTTP {status}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("railway_api_request_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamError(f"Railway API error: {e}") from e

        errors = payload.get("errors") or []
        if errors:
            message = "; ".join(str(err.get("message", "")) for err in errors)
            logger.error("railway_graphql_errors", errors=message)
            if any(marker in message.lower() for marker in _CONFLICT_MARKERS):
                raise ConflictError(f"Railway resource already exists: {message}")
            raise UpstreamError(f"Railway API error: {message}")

        return payload.get("data") or {}

    async def create_project(
        self, token: str, name: str, description: str | None = None
    ) -> PlatformProject:
        mutation = """
            mutation projectCreate($input: ProjectCreateInput!) {
              projectCreate(input: $input) {
                id
                name
                description
                createdAt
                environments { edges { node { id name } } }
              }
            }
        """
        data = await self._execute(
            token, mutation, {"input": {"name": name, "description": description}}
        )
        project = data["projectCreate"]
        edges = (project.get("environments") or {}).get("edges") or []

        logger.info("railway_project_created", project_id=project["id"], name=project["name"])
        return PlatformProject(
            id=project["id"],
            name=project["name"],
            description=project.get("description") or None,
            project_url=f"https://railway.app/project/{project['id']}",
            environments=[PlatformEnvironment(**edge["node"]) for edge in edges],
            created_at=project.get("createdAt"),
        )

    async def link_repository(self, token: str, project_id: str, repo_full_name: str) -> None:
        """Create a service sourced from a GitHub repo. Failures are logged, not raised."""
        mutation = """
            mutation serviceCreate($input: ServiceCreateInput!) {
              serviceCreate(input: $input) { id name }
            }
        """
        try:
            await self._execute(
                token,
                mutation,
                {"input": {"projectId": project_id, "source": {"repo": repo_full_name}}},
            )
        except UpstreamError as e:
            logger.warning(
                "railway_repo_link_failed", project_id=project_id, repo=repo_full_name, error=str(e)
            )
            return
        logger.info("railway_repo_linked", project_id=project_id, repo=repo_full_name)

    async def trigger_deployment(
        self,
        token: str,
        project_id: str,
        environment_id: str | None = None,
        branch: str | None = None,
    ) -> PlatformDeployment:
        mutation = """
            mutation deploymentTriggerCreate($input: DeploymentTriggerInput!) {
              deploymentTriggerCreate(input: $input) {
                id status meta createdAt updatedAt environmentId
              }
            }
        """
        deployment_input: dict[str, Any] = {"projectId": project_id}
        if environment_id:
            deployment_input["environmentId"] = environment_id
        if branch:
            deployment_input["branch"] = branch

        data = await self._execute(token, mutation, {"input": deployment_input})
        return _to_deployment(
            data["deploymentTriggerCreate"],
            status="BUILDING",
            project_id=project_id,
            environment_id=environment_id,
            branch=branch,
        )

    async def get_deployment(self, token: str, deployment_id: str) -> PlatformDeployment | None:
        """Deployment by platform id, or None if Railway doesn't know it."""
        query = """
            query deployment($id: String!) {
              deployment(id: $id) {
                id status meta createdAt updatedAt projectId environmentId staticUrl
              }
            }
        """
        try:
            data = await self._execute(token, query, {"id": deployment_id})
        except UpstreamError as e:
            if "not found" in str(e).lower():
                return None
            raise

        node = data.get("deployment")
        if not node:
            return None
        return _to_deployment(node)

    async def list_deployments(
        self,
        token: str,
        project_id: str,
        environment_id: str | None = None,
        first: int = 10,
        after: str | None = None,
    ) -> PlatformDeploymentList:
        query = """
            query deployments(
              $projectId: String!, $first: Int, $after: String, $environmentId: String
            ) {
              deployments(
                projectId: $projectId
                first: $first
                after: $after
                input: { environmentId: $environmentId }
              ) {
                edges {
                  node {
                    id status createdAt updatedAt projectId environmentId staticUrl meta
                  }
                }
                pageInfo { totalCount }
              }
            }
        """
        variables: dict[str, Any] = {"projectId": project_id, "first": first}
        if after:
            variables["after"] = after
        if environment_id:
            variables["environmentId"] = environment_id

        data = await self._execute(token, query, variables)
        connection = data.get("deployments") or {}
        deployments = [_to_deployment(edge["node"]) for edge in connection.get("edges") or []]
        total = (connection.get("pageInfo") or {}).get("totalCount") or len(deployments)
        return PlatformDeploymentList(deployments=deployments, total=total)

    async def redeploy_deployment(self, token: str, deployment_id: str) -> PlatformDeployment:
        mutation = """
            mutation deploymentRedeploy($id: String!) {
              deploymentRedeploy(id: $id) {
                id status createdAt updatedAt projectId environmentId
              }
            }
        """
        logger.info("railway_deployment_redeploying", deployment_id=deployment_id)
        data = await self._execute(token, mutation, {"id": deployment_id})
        return _to_deployment(data["deploymentRedeploy"], status="BUILDING")

    async def upsert_variables(
        self,
        token: str,
        project_id: str,
        environment_id: str,
        variables: dict[str, str],
    ) -> None:
        mutation = """
            mutation variableCollectionUpsert($input: VariableCollectionUpsertInput!) {
              variableCollectionUpsert(input: $input)
            }
        """
        await self._execute(
            token,
            mutation,
            {
                "input": {
                    "projectId": project_id,
                    "environmentId": environment_id,
                    "variables": variables,
                }
            },
        )
        logger.info(
            "railway_variables_upserted",
            project_id=project_id,
            variable_count=len(variables),
        )

    async def list_domains(self, token: str, service_id: str) -> list[PlatformDomain]:
        query = """
            query domains($serviceId: String!) {
              domains(serviceId: $serviceId) {
                edges { node { domain status { dnsStatus } } }
              }
            }
        """
        data = await self._execute(token, query, {"serviceId": service_id})
        edges = (data.get("domains") or {}).get("edges") or []
        return [
            PlatformDomain(
                domain=edge["node"]["domain"],
                dns_status=(edge["node"].get("status") or {}).get("dnsStatus") or "DNS_PENDING",
            )
            for edge in edges
        ]

    async def delete_domain(self, token: str, domain_id: str) -> None:
        mutation = """
            mutation domainDelete($id: String!) {
              domainDelete(id: $id)
            }
        """
        await self._execute(token, mutation, {"id": domain_id})
        logger.info("railway_domain_deleted", domain_id=domain_id)

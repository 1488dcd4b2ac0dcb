"""YAML manifest describing a project's services for ``deploy-all``.

Example:

    workspace_id: ws-1
    project_id: shop
    actor_id: ci
    services:
      - name: postgres
        kind: database
        platform_service_id: 3f0c...
        deploy_order: 0
      - name: api
        kind: api
        platform_service_id: 9a21...
        deploy_order: 1
"""

from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
import yaml

from .errors import DeployerError
from .models import Service, ServiceKind, ServiceStatus


class ManifestService(BaseModel):
    name: str
    kind: ServiceKind
    platform_service_id: str
    deploy_order: int = Field(default=0, ge=0)
    config: dict = Field(default_factory=dict)


class DeployManifest(BaseModel):
    workspace_id: str
    project_id: str
    platform_project_id: str | None = None
    actor_id: str = "cli"
    services: list[ManifestService] = Field(default_factory=list)

    def to_services(self) -> list[Service]:
        return [
            Service(
                workspace_id=self.workspace_id,
                project_id=self.project_id,
                platform_project_id=self.platform_project_id,
                platform_service_id=entry.platform_service_id,
                name=entry.name,
                kind=entry.kind,
                status=ServiceStatus.ACTIVE,
                deploy_order=entry.deploy_order,
                config=entry.config,
            )
            for entry in self.services
        ]


def load_manifest(path: str | Path) -> DeployManifest:
    """Parse and validate a manifest file.

    Raises:
        DeployerError: unreadable file, invalid YAML or schema mismatch.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise DeployerError(f"Cannot read manifest {path}: {e}") from e
    except yaml.YAMLError as e:
        raise DeployerError(f"Invalid YAML in manifest {path}: {e}") from e

    if not isinstance(raw, dict):
        raise DeployerError(f"Manifest {path} must be a mapping")

    try:
        return DeployManifest.model_validate(raw)
    except ValidationError as e:
        raise DeployerError(f"Invalid manifest {path}: {e}") from e

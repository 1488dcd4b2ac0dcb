class DeployerError(Exception):
    """Base class for deployer errors."""


class ForbiddenOperation(DeployerError):
    """CLI command rejected before any process was spawned."""


class UpstreamError(DeployerError):
    """Railway CLI or API call failed (bad gateway)."""


class ConflictError(UpstreamError):
    """Resource already exists or is busy."""


class NotFoundError(DeployerError):
    """Referenced service, deployment or project does not exist."""


class ReadinessTimeoutError(DeployerError, TimeoutError):
    """Service did not report ``active`` before the polling deadline."""

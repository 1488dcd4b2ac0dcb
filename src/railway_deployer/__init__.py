"""Sandboxed Railway CLI execution and dependency-ordered deployments."""

from .deployer import SingleServiceDeployer
from .executor import CommandExecutor
from .orchestrator import DeploymentOrchestrator
from .readiness import ServiceReadinessPoller
from .variables import VariableManager

__all__ = [
    "CommandExecutor",
    "DeploymentOrchestrator",
    "ServiceReadinessPoller",
    "SingleServiceDeployer",
    "VariableManager",
]

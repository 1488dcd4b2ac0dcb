"""Command line entry point: ``railway-deployer``."""

import asyncio
from pathlib import Path

from rich.console import Console
from rich.table import Table
import typer

from railway_deployer.audit import StructlogAuditSink
from railway_deployer.config import get_settings
from railway_deployer.deployer import SingleServiceDeployer
from railway_deployer.errors import DeployerError
from railway_deployer.executor import CommandExecutor
from railway_deployer.health import check_health
from railway_deployer.interfaces import NotificationSink
from railway_deployer.logging_config import setup_logging
from railway_deployer.manifest import load_manifest
from railway_deployer.models import BulkDeployResult, CommandRequest, DeploymentStatus
from railway_deployer.notifications import LogNotificationSink, WebhookNotificationSink
from railway_deployer.orchestrator import DeploymentOrchestrator
from railway_deployer.platform_client import RailwayGraphQLClient
from railway_deployer.readiness import ServiceReadinessPoller
from railway_deployer.stores import InMemoryDeploymentLedger, InMemoryServiceRegistry

app = typer.Typer(no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)

_STATUS_STYLE = {
    DeploymentStatus.SUCCESS: "green",
    DeploymentStatus.FAILED: "red",
    DeploymentStatus.CANCELLED: "yellow",
    DeploymentStatus.BUILDING: "cyan",
}

TokenOption = typer.Option(
    ...,
    "--token",
    envvar="RAILWAY_TOKEN",
    help="Railway API token",
    show_default=False,
)


@app.callback()
def callback(
    log_level: str = typer.Option(None, "--log-level", help="Override log level"),
):
    """
    Railway deployer CLI
    """
    setup_logging(log_level=log_level)


@app.command()
def health(token: str = TokenOption):
    """Check that the token can talk to Railway."""
    executor = CommandExecutor(get_settings())
    status = asyncio.run(check_health(executor, token))

    if status.connected:
        console.print(f"[bold green]✓ Connected[/bold green] as [cyan]{status.username}[/cyan]")
        return
    console.print(f"[bold red]✗ Not connected:[/bold red] {status.error}")
    raise typer.Exit(code=1)


@app.command("exec")
def exec_command(
    verb: str = typer.Argument(..., help="Railway CLI verb, e.g. status"),
    args: list[str] = typer.Argument(None, help="Positional arguments"),
    service: str = typer.Option(None, "--service", "-s", help="Platform service id"),
    environment: str = typer.Option(None, "--environment", "-e", help="Environment name"),
    flags: list[str] = typer.Option(None, "--flag", help="Extra flag, repeatable"),
    timeout_ms: int = typer.Option(None, "--timeout-ms", help="Override the default timeout"),
    token: str = TokenOption,
):
    """Run one sandboxed Railway CLI command and stream its output."""
    executor = CommandExecutor(get_settings())

    def on_output(line: str, stream: str) -> None:
        if stream == "stderr":
            err_console.print(line, markup=False, highlight=False)
        else:
            console.print(line, markup=False, highlight=False)

    request = CommandRequest(
        command=verb,
        token=token,
        args=args or [],
        service=service,
        environment=environment,
        flags=flags or [],
        timeout_ms=timeout_ms,
        on_output=on_output,
    )
    try:
        result = asyncio.run(executor.execute(request))
    except DeployerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from None

    if result.timed_out:
        err_console.print(f"[bold red]Timed out after {result.duration_ms}ms[/bold red]")
    if result.exit_code != 0:
        raise typer.Exit(code=result.exit_code)


@app.command("wait-ready")
def wait_ready(
    service_id: str = typer.Argument(..., help="Platform service id"),
    timeout_ms: int = typer.Option(None, "--timeout-ms", help="Readiness deadline"),
    token: str = TokenOption,
):
    """Block until a service reports active."""
    settings = get_settings()
    poller = ServiceReadinessPoller(
        CommandExecutor(settings), poll_interval_ms=settings.readiness_poll_interval_ms
    )
    try:
        asyncio.run(
            poller.wait_until_ready(
                token, service_id, timeout_ms=timeout_ms or settings.readiness_timeout_ms
            )
        )
    except DeployerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from None

    console.print(f"[bold green]✓ Service {service_id} is ready[/bold green]")


async def _deploy_all(manifest_path: Path, token: str, environment: str | None) -> BulkDeployResult:
    settings = get_settings()
    manifest = load_manifest(manifest_path)

    executor = CommandExecutor(settings)
    registry = InMemoryServiceRegistry(manifest.to_services())
    ledger = InMemoryDeploymentLedger()
    audit = StructlogAuditSink()
    notifications: NotificationSink
    if settings.notification_webhook_url:
        notifications = WebhookNotificationSink(settings.notification_webhook_url)
    else:
        notifications = LogNotificationSink()

    deployer = SingleServiceDeployer(
        executor,
        registry,
        ledger,
        platform=RailwayGraphQLClient(settings.graphql_endpoint, settings.api_timeout_seconds),
        audit=audit,
        notifications=notifications,
        reject_concurrent_deploys=settings.reject_concurrent_deploys,
    )
    orchestrator = DeploymentOrchestrator(
        deployer,
        registry,
        ledger,
        audit=audit,
        notifications=notifications,
        critical_max_deploy_order=settings.critical_max_deploy_order,
    )
    return await orchestrator.deploy_all(
        token,
        project_id=manifest.project_id,
        workspace_id=manifest.workspace_id,
        actor_id=manifest.actor_id,
        environment=environment,
    )


def _print_result(result: BulkDeployResult) -> None:
    table = Table(title=f"Bulk deploy {result.deployment_id}")
    table.add_column("Order", justify="right")
    table.add_column("Service", style="magenta")
    table.add_column("Status")
    table.add_column("URL / error")

    for outcome in result.services:
        style = _STATUS_STYLE.get(outcome.status, "white")
        table.add_row(
            str(outcome.deploy_order),
            outcome.service_name,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.deployment_url or outcome.error or "",
        )
    console.print(table)

    colour = {"success": "green", "partial_failure": "yellow"}.get(result.status, "red")
    console.print(f"Overall: [bold {colour}]{result.status}[/bold {colour}]")


@app.command("deploy-all")
def deploy_all(
    manifest: Path = typer.Argument(..., help="YAML manifest of the project's services"),
    environment: str = typer.Option(None, "--environment", "-e", help="Environment name"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    token: str = TokenOption,
):
    """Deploy every service in the manifest in dependency order."""
    try:
        result = asyncio.run(_deploy_all(manifest, token, environment))
    except DeployerError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from None

    if json_output:
        typer.echo(result.model_dump_json(indent=2))
    else:
        _print_result(result)

    if result.status != "success":
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

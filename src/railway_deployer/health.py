import re

import structlog

from .executor import CommandExecutor
from .models import CommandRequest, HealthStatus

logger = structlog.get_logger(__name__)

# "Logged in as testuser (test@example.com)"
_USERNAME_PATTERN = re.compile(r"as\s+(\S+)")


async def check_health(executor: CommandExecutor, token: str) -> HealthStatus:
    """Check that the token works by running ``railway whoami``. Never raises."""
    try:
        result = await executor.execute(CommandRequest(command="whoami", token=token))
    except Exception as e:
        logger.error("railway_health_check_failed", error=str(e))
        return HealthStatus(connected=False, error=str(e))

    if result.timed_out:
        return HealthStatus(
            connected=False, error=f"Health check timed out after {result.duration_ms}ms"
        )

    if result.exit_code != 0:
        return HealthStatus(
            connected=False, error=result.stderr or "Not logged in or invalid token"
        )

    match = _USERNAME_PATTERN.search(result.stdout)
    username = match.group(1) if match else result.stdout.strip()
    return HealthStatus(connected=True, username=username or None)

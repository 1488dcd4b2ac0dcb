import asyncio
import json

import structlog

from .errors import ReadinessTimeoutError
from .executor import CommandExecutor
from .models import CommandRequest

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_MS = 2_000
DEFAULT_READY_TIMEOUT_MS = 60_000


class ServiceReadinessPoller:
    """Polls ``railway status --json`` until a service reports ``active``."""

    def __init__(
        self,
        executor: CommandExecutor,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ) -> None:
        self._executor = executor
        self._poll_interval = poll_interval_ms / 1000

    async def wait_until_ready(
        self,
        token: str,
        platform_service_id: str,
        timeout_ms: int = DEFAULT_READY_TIMEOUT_MS,
    ) -> None:
        """Return once the service is active.

        Malformed status output counts as "not ready yet". The sleep between
        polls is clipped so the loop never overruns the deadline.

        Raises:
            ReadinessTimeoutError: if the deadline passes first.
        """
        loop = asyncio.get_running_loop()
        timeout = timeout_ms / 1000
        start = loop.time()
        attempts = 0

        while loop.time() - start < timeout:
            attempts += 1
            result = await self._executor.execute(
                CommandRequest(
                    command="status",
                    token=token,
                    service=platform_service_id,
                    flags=["--json"],
                )
            )

            if result.ok and result.stdout and _reports_active(result.stdout):
                logger.info(
                    "service_ready",
                    platform_service_id=platform_service_id,
                    attempts=attempts,
                )
                return

            remaining = timeout - (loop.time() - start)
            if remaining <= 0:
                break
            await asyncio.sleep(min(self._poll_interval, remaining))

        logger.warning(
            "service_readiness_timeout",
            platform_service_id=platform_service_id,
            timeout_ms=timeout_ms,
            attempts=attempts,
        )
        raise ReadinessTimeoutError(
            f"Service {platform_service_id} did not become ready within {timeout_ms}ms"
        )


def _reports_active(stdout: str) -> bool:
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError:
        return False
    return isinstance(data, dict) and str(data.get("status", "")).lower() == "active"

"""Sandboxed Railway CLI execution.

Runs the CLI with an explicit argument vector (never through a shell) and a
four-variable environment, streams sanitized output line by line, and on
timeout sends SIGTERM followed by SIGKILL after a grace period.

Only validation raises. Once the process has been spawned, every outcome,
including spawn failures and timeouts, is reported in the returned
``CommandExecutionResult``.
"""

import asyncio
import contextlib
from pathlib import Path
import re
import time
from typing import Literal

import structlog

from .config import Settings, get_settings
from .errors import ForbiddenOperation
from .models import CommandExecutionResult, CommandRequest, OutputCallback
from .sanitizer import sanitize_line

logger = structlog.get_logger(__name__)

ALLOWED_COMMANDS = frozenset(
    {
        "whoami",
        "status",
        "list",
        "init",
        "link",
        "up",
        "add",
        "redeploy",
        "restart",
        "down",
        "domain",
        "logs",
        "variable",
        "environment",
        "service",
        "connect",
    }
)

DENIED_COMMANDS = frozenset({"login", "logout", "open", "delete", "ssh", "shell", "run"})

DEPLOY_COMMANDS = frozenset({"up", "redeploy"})

SHELL_INJECTION_PATTERN = re.compile(r"[;&|`$(){}]")

# The only variables a CLI process ever sees.
SANDBOX_ENV_KEYS = ("RAILWAY_TOKEN", "HOME", "PATH", "NODE_ENV")

SPAWN_FAILURE_EXIT_CODE = 127

_STREAM_LIMIT = 1024 * 1024
_DRAIN_TIMEOUT_SECONDS = 2.0


def validate_command(command: str) -> str:
    """Validate a CLI command and return its base verb.

    Raises:
        ForbiddenOperation: empty, contains shell metacharacters, denied or
            not allow-listed.
    """
    if not command or not command.strip():
        raise ForbiddenOperation("Railway CLI command is required")

    if SHELL_INJECTION_PATTERN.search(command):
        raise ForbiddenOperation(f"Railway CLI command contains forbidden characters: {command}")

    verb = command.split()[0]

    if verb in DENIED_COMMANDS:
        raise ForbiddenOperation(
            f"Railway CLI command '{verb}' is explicitly denied for security reasons"
        )

    if verb not in ALLOWED_COMMANDS:
        raise ForbiddenOperation(
            f"Railway CLI command '{verb}' is not in the allowlist. "
            f"Allowed commands: {', '.join(sorted(ALLOWED_COMMANDS))}"
        )

    return verb


def build_args(request: CommandRequest) -> list[str]:
    """Argument vector: verb, positional args, -s service, -e environment, flags."""
    args = [*request.command.split(), *request.args]
    if request.service:
        args.extend(["-s", request.service])
    if request.environment:
        args.extend(["-e", request.environment])
    args.extend(request.flags)
    return args


def build_sandbox_env(token: str, settings: Settings) -> dict[str, str]:
    """Environment for the CLI process. Nothing is inherited from the host."""
    return {
        "RAILWAY_TOKEN": token,
        "HOME": settings.sandbox_home,
        "PATH": settings.sandbox_path,
        "NODE_ENV": settings.node_env,
    }


def _exit_code(returncode: int | None) -> int:
    if returncode is None:
        return 1
    if returncode < 0:
        # killed by signal -returncode
        return 128 - returncode
    return returncode


class CommandExecutor:
    """Executes Railway CLI commands inside the sandbox."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def default_timeout_ms(self, verb: str) -> int:
        if verb in DEPLOY_COMMANDS:
            return self._settings.deploy_timeout_ms
        return self._settings.command_timeout_ms

    async def execute(self, request: CommandRequest) -> CommandExecutionResult:
        """Validate, spawn and collect one CLI invocation.

        Raises:
            ForbiddenOperation: if the command fails validation. Nothing is
                spawned in that case.
        """
        verb = validate_command(request.command)
        args = build_args(request)
        env = build_sandbox_env(request.token, self._settings)
        timeout_ms = (
            request.timeout_ms if request.timeout_ms is not None else self.default_timeout_ms(verb)
        )
        return await self._spawn_and_collect(verb, args, env, request, timeout_ms)

    async def _spawn_and_collect(
        self,
        verb: str,
        args: list[str],
        env: dict[str, str],
        request: CommandRequest,
        timeout_ms: int,
    ) -> CommandExecutionResult:
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        logger.debug(
            "cli_command_starting",
            command=verb,
            service=request.service,
            environment=request.environment,
            timeout_ms=timeout_ms,
        )

        start = time.monotonic()
        try:
            cwd = request.cwd
            if cwd is None:
                cwd = self._settings.sandbox_home
                Path(cwd).mkdir(parents=True, exist_ok=True)
            process = await asyncio.create_subprocess_exec(
                self._settings.cli_path,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=cwd,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error("cli_spawn_failed", command=verb, error=str(e))
            return CommandExecutionResult(
                exit_code=SPAWN_FAILURE_EXIT_CODE,
                stdout="",
                stderr=sanitize_line(f"Spawn error: {e}"),
                duration_ms=duration_ms,
                timed_out=False,
            )

        readers = asyncio.gather(
            self._pump(process.stdout, "stdout", stdout_lines, request.on_output),
            self._pump(process.stderr, "stderr", stderr_lines, request.on_output),
        )

        timed_out = False
        try:
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout_ms / 1000)
            except TimeoutError:
                timed_out = True
                await self._terminate(process, verb, timeout_ms)
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            readers.cancel()
            raise

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            await asyncio.wait_for(readers, timeout=_DRAIN_TIMEOUT_SECONDS)
        except TimeoutError:
            # A grandchild process may still hold the pipes open.
            logger.warning("cli_output_drain_incomplete", command=verb, pid=process.pid)

        exit_code = _exit_code(process.returncode)

        logger.info(
            "cli_command_finished",
            command=verb,
            exit_code=exit_code,
            duration_ms=duration_ms,
            timed_out=timed_out,
        )

        return CommandExecutionResult(
            exit_code=exit_code,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
            duration_ms=duration_ms,
            timed_out=timed_out,
        )

    async def _terminate(
        self, process: asyncio.subprocess.Process, verb: str, timeout_ms: int
    ) -> None:
        """SIGTERM, then SIGKILL if the process outlives the grace period."""
        logger.warning(
            "cli_command_timed_out", command=verb, timeout_ms=timeout_ms, pid=process.pid
        )
        with contextlib.suppress(ProcessLookupError):
            process.terminate()

        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.kill_grace_ms / 1000)
        except TimeoutError:
            logger.warning(
                "cli_command_force_kill",
                command=verb,
                grace_ms=self._settings.kill_grace_ms,
                pid=process.pid,
            )
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        name: Literal["stdout", "stderr"],
        sink: list[str],
        on_output: OutputCallback | None,
    ) -> None:
        if stream is None:
            return

        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                logger.warning("cli_output_line_too_long", stream=name)
                continue
            if not raw:
                break

            line = raw.decode(errors="replace").rstrip("\r\n")
            if not line:
                continue

            sanitized = sanitize_line(line)
            sink.append(sanitized)

            if on_output is not None:
                try:
                    on_output(sanitized, name)
                except Exception:
                    logger.exception("cli_output_callback_failed", stream=name)

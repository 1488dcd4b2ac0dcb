"""Settings for the Railway deployer, read with pydantic-settings.

Every field has a default, so ``Settings()`` works without any environment.
Override with ``RAILWAY_DEPLOYER_*`` variables or a ``.env`` file:

    RAILWAY_DEPLOYER_CLI_PATH=/usr/local/bin/railway
    RAILWAY_DEPLOYER_CRITICAL_MAX_DEPLOY_ORDER=0
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Deployer settings."""

    model_config = SettingsConfigDict(
        env_prefix="RAILWAY_DEPLOYER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Logging ===

    service_name: str = Field(
        default="railway-deployer",
        description="Service name for structured logging",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    # === CLI sandbox ===

    cli_path: str = Field(default="railway", description="Railway CLI executable")
    sandbox_home: str = Field(
        default="/tmp/railway-sandbox",  # noqa: S108
        description="HOME and default working directory of the CLI process",
    )
    sandbox_path: str = Field(
        default="/usr/local/bin:/usr/bin:/bin",
        description="PATH given to the CLI process",
    )
    node_env: str = Field(default="production", description="NODE_ENV given to the CLI process")

    # === Timeouts (milliseconds) ===

    deploy_timeout_ms: int = Field(default=600_000, ge=1)
    command_timeout_ms: int = Field(default=120_000, ge=1)
    kill_grace_ms: int = Field(default=5_000, ge=0)

    # === Readiness polling ===

    readiness_poll_interval_ms: int = Field(default=2_000, ge=1)
    readiness_timeout_ms: int = Field(default=60_000, ge=1)

    # === Rollout policy ===

    critical_max_deploy_order: int = Field(
        default=1,
        ge=0,
        description="A failure at or below this deploy order halts a bulk rollout",
    )
    reject_concurrent_deploys: bool = Field(
        default=False,
        description="Reject deploy/redeploy/rollback of a service that is already deploying",
    )

    # === Platform API ===

    graphql_endpoint: str = Field(
        default="https://backboard.railway.app/graphql/v2",
        description="Railway GraphQL endpoint",
    )
    api_timeout_seconds: float = Field(default=30.0, gt=0)

    # === Notifications ===

    notification_webhook_url: str | None = Field(
        default=None,
        description="Optional webhook receiving deployment notifications",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


@lru_cache
def get_settings() -> Settings:
    return Settings()

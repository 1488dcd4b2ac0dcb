from pydantic import ValidationError
import pytest

from railway_deployer.config import Settings, get_settings


def test_defaults(monkeypatch):
    monkeypatch.chdir("/")
    settings = Settings()

    assert settings.cli_path == "railway"
    assert settings.sandbox_home == "/tmp/railway-sandbox"  # noqa: S108
    assert settings.sandbox_path == "/usr/local/bin:/usr/bin:/bin"
    assert settings.node_env == "production"
    assert settings.deploy_timeout_ms == 600_000
    assert settings.command_timeout_ms == 120_000
    assert settings.kill_grace_ms == 5_000
    assert settings.readiness_poll_interval_ms == 2_000
    assert settings.critical_max_deploy_order == 1
    assert settings.reject_concurrent_deploys is False
    assert settings.graphql_endpoint == "https://backboard.railway.app/graphql/v2"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("RAILWAY_DEPLOYER_CLI_PATH", "/opt/railway/bin/railway")
    monkeypatch.setenv("RAILWAY_DEPLOYER_CRITICAL_MAX_DEPLOY_ORDER", "0")
    monkeypatch.setenv("RAILWAY_DEPLOYER_LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.cli_path == "/opt/railway/bin/railway"
    assert settings.critical_max_deploy_order == 0
    assert settings.log_level == "DEBUG"


def test_invalid_log_level(monkeypatch):
    monkeypatch.setenv("RAILWAY_DEPLOYER_LOG_LEVEL", "LOUD")

    with pytest.raises(ValidationError, match="Invalid log level"):
        Settings()


def test_get_settings_is_cached():
    assert get_settings() is get_settings()

import json
import logging

import pytest
import structlog

from railway_deployer.logging_config import redact_secrets, setup_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def _json_events(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def test_json_lines_go_to_stderr(capsys):
    setup_logging(service_name="railway-deployer-test", log_format="json", log_level="INFO")

    structlog.get_logger("railway_deployer.test").info("something_happened", service_id="svc-1")

    captured = capsys.readouterr()
    assert captured.out == ""
    event = next(e for e in _json_events(captured.err) if e["event"] == "something_happened")
    assert event["service_id"] == "svc-1"
    assert event["service"] == "railway-deployer-test"
    assert event["level"] == "info"
    assert "timestamp" in event


def test_credentials_are_masked_in_log_lines(capsys):
    setup_logging(log_format="json", log_level="INFO")

    structlog.get_logger("railway_deployer.test").error(
        "cli_output", line="RAILWAY_TOKEN=rw_abc123 failed for postgres://admin:pw@db:5432/app"
    )

    event = next(e for e in _json_events(capsys.readouterr().err) if e["event"] == "cli_output")
    assert "rw_abc123" not in event["line"]
    assert "admin:pw" not in event["line"]
    assert "RAILWAY_TOKEN=***" in event["line"]


def test_redact_secrets_leaves_non_strings():
    event = redact_secrets(None, "info", {"event": "x", "exit_code": 1, "header": "Bearer abc.def"})

    assert event == {"event": "x", "exit_code": 1, "header": "Bearer ***"}


def test_log_level_applied():
    setup_logging(log_format="console", log_level="warning")

    assert logging.getLogger().level == logging.WARNING

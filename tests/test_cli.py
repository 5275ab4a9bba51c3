"""Tests for CLI commands and helper functions."""

import json
import logging

import pytest
from click.testing import CliRunner

from service_callback.cli import main, run_async
from service_callback.models import BatchSummary

CONFIG = """
[servicebus]
connection_string = memory://
topic_name = ccpay-service-callback-topic
subscription_name = serviceCallbackPremiumSubscription

[s2s]
url = http://s2s.local
secret = JBSWY3DPEHPK3PXP
microservice = payment_app

[dead_letter_email]
password = hunter2
"""


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, root.handlers[:]
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text(CONFIG)
    return str(path)


class TestHelperFunctions:
    """Tests for CLI helper functions."""

    def test_run_async(self):
        """Test run_async executes coroutine synchronously."""
        async def async_func():
            return 42

        assert run_async(async_func()) == 42


class TestRunCommand:
    """Tests for the run command."""

    def test_run_against_empty_memory_bus(self, config_file):
        runner = CliRunner()
        result = runner.invoke(main, ["--log-level", "WARNING", "--config", config_file, "run", "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == BatchSummary().as_dict()

    def test_run_writes_metrics_file(self, config_file, tmp_path):
        metrics_file = tmp_path / "scb.prom"
        runner = CliRunner()
        result = runner.invoke(main, ["-c", config_file, "run", "--metrics-file", str(metrics_file)])

        assert result.exit_code == 0, result.output
        assert "Batch summary" in result.output
        assert "scb_last_batch_size 0.0" in metrics_file.read_text()

    def test_missing_settings_exit_with_error(self, tmp_path, monkeypatch):
        for key in ("SCB_CONNECTION_STRING", "SCB_S2S_SECRET", "SCB_SECRETS_VOLUME"):
            monkeypatch.delenv(key, raising=False)
        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(tmp_path / "missing.ini"), "run"])

        assert result.exit_code == 1


class TestConfigCommand:
    """Tests for the config command."""

    def test_secrets_are_masked(self, config_file):
        runner = CliRunner()
        result = runner.invoke(main, ["--config", config_file, "config"])

        assert result.exit_code == 0, result.output
        assert "payment_app" in result.output
        assert "JBSWY3DPEHPK3PXP" not in result.output
        assert "hunter2" not in result.output

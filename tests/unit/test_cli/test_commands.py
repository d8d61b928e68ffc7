"""Unit tests for the ollama-relay CLI commands.

Tests cover:
- JSON envelope on success and failure
- check / models / status against a mock service
- ask with streaming, fallback and error mapping
- configuration errors from the environment
"""

import json

from ollama_relay.cli.main import cli


def _envelope(result):
    return json.loads(result.stdout)


class TestCheck:
    """Tests for the check command."""

    def test_connected(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ["check"], obj=cli_obj)
        assert result.exit_code == 0, f"Unexpected output: {result.output}"
        data = _envelope(result)
        assert data["success"] is True
        assert data["data"]["connected"] is True
        assert data["data"]["model_available"] is True
        assert data["data"]["state"]["status"] == "connected"

    def test_unreachable(self, cli_runner, cli_obj, ollama):
        ollama.down = True
        result = cli_runner.invoke(cli, ["check"], obj=cli_obj)
        assert result.exit_code == 1
        data = _envelope(result)
        assert data["success"] is False
        assert data["data"]["error_code"] == "UNAVAILABLE"
        assert "not running" in data["error"]


class TestModels:
    """Tests for the models command."""

    def test_lists_models(self, cli_runner, cli_obj, ollama):
        ollama.models = ["mistral:latest", "llama2"]
        result = cli_runner.invoke(cli, ["models"], obj=cli_obj)
        assert result.exit_code == 0
        data = _envelope(result)["data"]
        assert data["models"] == ["llama2", "mistral:latest"]
        assert data["count"] == 2

    def test_failure(self, cli_runner, cli_obj, ollama):
        ollama.down = True
        result = cli_runner.invoke(cli, ["models"], obj=cli_obj)
        assert result.exit_code == 1
        data = _envelope(result)
        assert data["data"]["error_type"] == "connection"
        assert data["error"].startswith("Failed to fetch models")


class TestAsk:
    """Tests for the ask command."""

    def test_reply(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ["ask", "Hello"], obj=cli_obj)
        assert result.exit_code == 0, f"Unexpected output: {result.output}"
        data = _envelope(result)["data"]
        assert data["reply"] == "Hello from the model"
        assert data["model"] == "mistral"
        assert data["statistics"]["succeeded"] == 1

    def test_stream(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ["ask", "--stream", "Hello"], obj=cli_obj)
        assert result.exit_code == 0, f"Unexpected output: {result.output}"
        assert _envelope(result)["data"]["reply"] == "Hello from the model "

    def test_unreachable_without_retries(self, cli_runner, cli_obj, ollama):
        ollama.down = True
        result = cli_runner.invoke(cli, ["--retries", "0", "ask", "Hello"], obj=cli_obj)
        assert result.exit_code == 1
        data = _envelope(result)
        assert data["data"]["error_code"] == "UNAVAILABLE"
        assert data["data"]["details"]["retryable"] is True
        assert data["data"]["details"]["attempts"] == 1

    def test_fallback_reply(self, cli_runner, cli_obj, ollama):
        ollama.down = True
        result = cli_runner.invoke(
            cli, ["--retries", "0", "ask", "--fallback", "Hello"], obj=cli_obj
        )
        assert result.exit_code == 0
        reply = _envelope(result)["data"]["reply"]
        assert reply == cli_obj.config.messages.fallback_mode

    def test_model_override(self, cli_runner, cli_obj, ollama):
        ollama.models = ["mistral:latest", "llama2"]
        result = cli_runner.invoke(cli, ["--model", "llama2", "ask", "Hi"], obj=cli_obj)
        assert result.exit_code == 0
        assert _envelope(result)["data"]["model"] == "llama2"


class TestStatus:
    """Tests for the status command."""

    def test_status(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ["status"], obj=cli_obj)
        assert result.exit_code == 0
        data = _envelope(result)["data"]
        assert data["mode"] == "normal"
        assert data["transport"]["strategies"] == ["direct", "public"]
        assert data["recommendations"]


class TestConfigErrors:
    """Tests for configuration failures."""

    def test_invalid_environment(self, cli_runner):
        result = cli_runner.invoke(
            cli, ["check"], env={"OLLAMA_RELAY_TIMEOUT": "soon"}
        )
        assert result.exit_code == 1
        data = _envelope(result)
        assert data["data"]["error_code"] == "CONFIG_ERROR"
        assert any("OLLAMA_RELAY_TIMEOUT" in e for e in data["data"]["details"]["errors"])

    def test_invalid_override(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ["--timeout", "0", "check"], obj=cli_obj)
        assert result.exit_code == 1
        assert _envelope(result)["data"]["error_code"] == "CONFIG_ERROR"

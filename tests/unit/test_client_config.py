"""Unit tests for client configuration.

Tests cover:
- Defaults and production timeout
- OLLAMA_RELAY_* environment loading and overrides
- Validation problems collected and raised together
"""

import pytest

from ollama_relay.config import (
    ChatSettings,
    ClientConfig,
    GenerationOptions,
    NetworkSettings,
    _parse_bool,
    _try_parse_bool,
)
from ollama_relay.core.errors.config import ConfigurationError


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = ClientConfig()
        assert config.base_url == "http://localhost:11434"
        assert config.model == "mistral"
        assert config.timeout == 30.0
        assert config.max_retries == 3
        assert config.max_attempts == 4
        assert config.is_remote is False
        assert config.validate() == []

    def test_production_timeout(self):
        assert ClientConfig(production=True).timeout == 45.0
        assert ClientConfig(production=True, timeout=10.0).timeout == 10.0

    def test_remote_host(self):
        config = ClientConfig(base_url="https://gpu.example.com:11434")
        assert config.is_remote is True
        assert config.host == "gpu.example.com"

    def test_generation_options(self):
        options = GenerationOptions(temperature=0.2, max_tokens=256).to_options()
        assert options["temperature"] == 0.2
        assert options["num_predict"] == 256
        assert options["top_p"] == 0.9


class TestFromEnv:
    """Tests for environment loading."""

    def test_reads_variables(self):
        config = ClientConfig.from_env(
            {
                "OLLAMA_RELAY_URL": "http://10.0.0.5:11434",
                "OLLAMA_RELAY_MODEL": "llama2",
                "OLLAMA_RELAY_TIMEOUT": "12.5",
                "OLLAMA_RELAY_RETRY_ATTEMPTS": "1",
                "OLLAMA_RELAY_USE_PROXY": "yes",
                "OLLAMA_RELAY_CORS_PROXY": "http://proxy:8080",
                "OLLAMA_RELAY_HEALTH_CHECK_INTERVAL": "0",
                "OLLAMA_RELAY_MAX_HISTORY": "4",
                "OLLAMA_RELAY_TEMPERATURE": "0.1",
            }
        )
        assert config.base_url == "http://10.0.0.5:11434"
        assert config.model == "llama2"
        assert config.timeout == 12.5
        assert config.max_retries == 1
        assert config.network.use_proxy is True
        assert config.network.cors_proxy == "http://proxy:8080"
        assert config.network.health_check_interval == 0
        assert config.chat.max_history_length == 4
        assert config.generation.temperature == 0.1

    def test_overrides_win(self):
        config = ClientConfig.from_env({"OLLAMA_RELAY_MODEL": "llama2"}, model="phi3")
        assert config.model == "phi3"

    def test_production_defaults(self):
        config = ClientConfig.from_env(
            {"OLLAMA_RELAY_ENV": "production", "OLLAMA_RELAY_URL": "https://ai.example.com"}
        )
        assert config.production is True
        assert config.timeout == 45.0

    def test_production_requires_url(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_env({"OLLAMA_RELAY_ENV": "production"})
        assert "base_url is required in production environment" in exc_info.value.errors

    def test_unparsable_values_collected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_env(
                {"OLLAMA_RELAY_TIMEOUT": "soon", "OLLAMA_RELAY_USE_PROXY": "maybe"}
            )
        errors = exc_info.value.errors
        assert any("OLLAMA_RELAY_TIMEOUT" in e for e in errors)
        assert any("OLLAMA_RELAY_USE_PROXY" in e for e in errors)

    def test_validate_false_returns_config(self):
        config = ClientConfig.from_env({"OLLAMA_RELAY_RETRY_ATTEMPTS": "99"}, validate=False)
        assert config.max_retries == 99


class TestValidation:
    """Tests for validate / raise_for_errors."""

    @pytest.mark.parametrize(
        "kwargs,fragment",
        [
            ({"base_url": "ftp://host"}, "base_url must be a valid http(s) URL"),
            ({"model": " "}, "model must not be empty"),
            ({"timeout": 0.5}, "timeout must be at least 1 second"),
            ({"max_retries": 11}, "max_retries must be between 0 and 10"),
            ({"generation": GenerationOptions(temperature=3.0)}, "temperature"),
            ({"network": NetworkSettings(health_check_interval=2)}, "health_check_interval"),
            ({"network": NetworkSettings(cors_proxy="proxy:8080")}, "cors_proxy"),
            (
                {"network": NetworkSettings(slow_threshold_ms=9000, very_slow_threshold_ms=8000)},
                "slow_threshold_ms",
            ),
            ({"chat": ChatSettings(max_history_length=0)}, "max_history_length"),
        ],
    )
    def test_problems(self, kwargs, fragment):
        problems = ClientConfig(**kwargs).validate()
        assert any(fragment in p for p in problems)

    def test_raise_for_errors_lists_all(self):
        config = ClientConfig(model="", timeout=0)
        with pytest.raises(ConfigurationError) as exc_info:
            config.raise_for_errors()
        assert len(exc_info.value.errors) == 2

    def test_frozen(self):
        with pytest.raises(AttributeError):
            ClientConfig().model = "other"


class TestParseBool:
    """Tests for boolean parsing helpers."""

    @pytest.mark.parametrize("value", ["true", "1", "yes", "ON", True])
    def test_truthy(self, value):
        assert _parse_bool(value) is True

    def test_try_parse_rejects_garbage(self):
        assert _try_parse_bool("off") is False
        assert _try_parse_bool("perhaps") is None

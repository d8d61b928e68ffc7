"""Shared fixtures for CLI command tests."""

import json

import httpx
import pytest
from click.testing import CliRunner

from ollama_relay.cli.registry import CliContext
from ollama_relay.config import ClientConfig, NetworkSettings


class FakeOllama:
    """Minimal Ollama service for CLI tests."""

    def __init__(self):
        self.models = ["mistral:latest"]
        self.down = False
        self.reply = "Hello from the model"

    def __call__(self, request):
        if self.down:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": m} for m in self.models]})
        if json.loads(request.content).get("stream"):
            body = "".join(
                f'{{"response": "{word} ", "done": false}}\n' for word in self.reply.split()
            )
            return httpx.Response(200, content=(body + '{"done": true}\n').encode())
        return httpx.Response(200, json={"response": self.reply, "done": True})


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def ollama():
    return FakeOllama()


@pytest.fixture
def cli_obj(ollama):
    """CLI context wired to the fake service with probing disabled."""
    return CliContext(
        config=ClientConfig(network=NetworkSettings(health_check_interval=0)),
        transport=httpx.MockTransport(ollama),
    )

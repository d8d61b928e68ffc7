"""Shared fixtures for integration tests."""

import random

import httpx
import pytest

from ollama_relay.client import ResilientClient
from ollama_relay.config import ClientConfig, NetworkSettings


class FakeOllama:
    """In-memory Ollama service behind an ``httpx.MockTransport``.

    ``generate`` may be replaced with any handler returning an
    ``httpx.Response`` (or a coroutine of one).
    """

    def __init__(self):
        self.models = ["mistral:latest", "llama2"]
        self.down = False
        self.paths: list[str] = []
        self.prompts: list[dict] = []
        self.generate = lambda request: httpx.Response(
            200, json={"response": "Hello!", "done": True}
        )

    def __call__(self, request):
        self.paths.append(request.url.path)
        if self.down:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": m} for m in self.models]})
        return self.generate(request)

    @property
    def generate_calls(self) -> int:
        return self.paths.count("/api/generate")


@pytest.fixture
def ollama():
    return FakeOllama()


@pytest.fixture
def test_config():
    """Configuration with scheduled probing disabled."""
    return ClientConfig(network=NetworkSettings(health_check_interval=0))


@pytest.fixture
def make_client(ollama, test_config, fake_sleep):
    """Factory building a client wired to the fake service."""

    def _make(config=None, **kwargs):
        http = httpx.AsyncClient(transport=httpx.MockTransport(ollama))
        kwargs.setdefault("sleep_func", fake_sleep)
        kwargs.setdefault("rng", random.Random(0))
        return ResilientClient(config or test_config, http=http, **kwargs)

    return _make

"""Unit tests for the Ollama HTTP transport.

Tests cover:
- Newline-delimited JSON stream parsing
- generate / list_models success and failure classification
- CORS escalation through the fallback chain and forced proxying
"""

import json

import httpx
import pytest

from ollama_relay.core.errors.connection import ErrorCategory, InferenceError
from ollama_relay.core.resilience.messages import MessageCatalog
from ollama_relay.core.transport.fallback import FallbackChain
from ollama_relay.core.transport.ollama import (
    OllamaTransport,
    build_generate_payload,
    iter_response_fragments,
)

BASE = "http://localhost:11434"
PROXY = "http://proxy.internal:8080"
PAYLOAD = build_generate_payload("mistral", "User: hi\nAssistant: ", stream=False)


def _http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class CountingLines:
    """Async line source that counts how many lines were pulled."""

    def __init__(self, lines):
        self.lines = lines
        self.reads = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for line in self.lines:
            self.reads += 1
            yield line


class TestStreamParsing:
    """Tests for iter_response_fragments."""

    @pytest.mark.asyncio
    async def test_stops_at_done_without_further_reads(self):
        source = CountingLines(
            [
                '{"response": "Hel", "done": false}',
                "",
                "not json",
                '{"response": "lo", "done": false}',
                '{"response": "", "done": true}',
                '{"response": "never"}',
            ]
        )

        fragments = [f async for f in iter_response_fragments(source)]

        assert fragments == ["Hel", "lo"]
        assert source.reads == 5

    @pytest.mark.asyncio
    async def test_final_fragment_with_done(self):
        source = CountingLines(['{"response": "Hi", "done": true}'])
        assert [f async for f in iter_response_fragments(source)] == ["Hi"]

    def test_payload(self):
        payload = build_generate_payload("mistral", "p", stream=True, options={"top_p": 0.9})
        assert payload == {
            "model": "mistral",
            "prompt": "p",
            "stream": True,
            "options": {"top_p": 0.9},
        }


class TestGenerate:
    """Tests for non-streaming generation."""

    @pytest.mark.asyncio
    async def test_success(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "Hello!", "done": True})

        async with _http(handler) as http:
            text = await OllamaTransport(BASE, http).generate(PAYLOAD)

        assert text == "Hello!"
        assert captured["path"] == "/api/generate"
        assert captured["body"]["model"] == "mistral"
        assert captured["body"]["stream"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,category",
        [(404, ErrorCategory.MODEL), (500, ErrorCategory.SERVER), (401, ErrorCategory.AUTH)],
    )
    async def test_http_status(self, status, category):
        async with _http(lambda request: httpx.Response(status)) as http:
            with pytest.raises(InferenceError) as exc_info:
                await OllamaTransport(BASE, http).generate(PAYLOAD)

        assert exc_info.value.category is category
        assert exc_info.value.status == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"done": True}),
            httpx.Response(200, text="<html>oops</html>"),
        ],
    )
    async def test_invalid_body(self, response):
        async with _http(lambda request: response) as http:
            with pytest.raises(InferenceError) as exc_info:
                await OllamaTransport(BASE, http).generate(PAYLOAD)

        assert exc_info.value.category is ErrorCategory.UNKNOWN
        assert exc_info.value.message == MessageCatalog().invalid_response

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        async with _http(handler) as http:
            with pytest.raises(InferenceError) as exc_info:
                await OllamaTransport(BASE, http).generate(PAYLOAD)

        assert exc_info.value.category is ErrorCategory.CONNECTION
        assert exc_info.value.message == MessageCatalog().local_service_not_running


class TestStreamGenerate:
    """Tests for streaming generation."""

    @pytest.mark.asyncio
    async def test_fragments_in_order(self):
        body = (
            b'{"response": "Hel", "done": false}\n'
            b'{"response": "lo", "done": false}\n'
            b'{"response": "", "done": true}\n'
        )

        def handler(request):
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=body)

        async with _http(handler) as http:
            transport = OllamaTransport(BASE, http)
            fragments = [f async for f in transport.stream_generate(PAYLOAD)]

        assert fragments == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_status_error(self):
        async with _http(lambda request: httpx.Response(503, text="loading")) as http:
            transport = OllamaTransport(BASE, http)
            with pytest.raises(InferenceError) as exc_info:
                async for _ in transport.stream_generate(PAYLOAD):
                    pass

        assert exc_info.value.category is ErrorCategory.SERVER


class TestListModels:
    """Tests for the tags endpoint."""

    @pytest.mark.asyncio
    async def test_names(self):
        def handler(request):
            assert request.url.path == "/api/tags"
            return httpx.Response(
                200, json={"models": [{"name": "mistral:latest"}, {"name": "llama2"}, {}]}
            )

        async with _http(handler) as http:
            models = await OllamaTransport(BASE, http).list_models()

        assert models == ["mistral:latest", "llama2"]

    @pytest.mark.asyncio
    async def test_empty(self):
        async with _http(lambda request: httpx.Response(200, json={})) as http:
            assert await OllamaTransport(BASE, http).list_models() == []


class TestCorsEscalation:
    """Tests for fallback escalation and forced proxying."""

    @pytest.mark.asyncio
    async def test_cors_failure_escalates_to_proxy(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            if request.url.host == "localhost":
                raise httpx.ConnectError("CORS request did not succeed", request=request)
            return httpx.Response(200, json={"response": "via proxy"})

        async with _http(handler) as http:
            transport = OllamaTransport(
                BASE, http, fallback=FallbackChain(http, cors_proxy=PROXY)
            )
            assert await transport.generate(PAYLOAD) == "via proxy"

        assert seen == ["localhost", "proxy.internal"]

    @pytest.mark.asyncio
    async def test_cors_escalation_failure_names_both(self):
        def handler(request):
            if request.url.host == "localhost":
                raise httpx.ConnectError("CORS request did not succeed", request=request)
            return httpx.Response(502)

        async with _http(handler) as http:
            transport = OllamaTransport(
                BASE, http, fallback=FallbackChain(http, cors_proxy=PROXY)
            )
            with pytest.raises(InferenceError) as exc_info:
                await transport.generate(PAYLOAD)

        error = exc_info.value
        assert error.category is ErrorCategory.CORS
        assert error.message.startswith("Direct connection failed due to CORS")
        assert "fallback also failed" in error.message

    @pytest.mark.asyncio
    async def test_non_cors_failure_does_not_escalate(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            raise httpx.ConnectError("Connection refused", request=request)

        async with _http(handler) as http:
            transport = OllamaTransport(
                BASE, http, fallback=FallbackChain(http, cors_proxy=PROXY)
            )
            with pytest.raises(InferenceError):
                await transport.generate(PAYLOAD)

        assert seen == ["localhost"]

    @pytest.mark.asyncio
    async def test_forced_proxy_maps_last_status(self):
        def handler(request):
            return httpx.Response(503)

        async with _http(handler) as http:
            chain = FallbackChain(http, cors_proxy=PROXY, use_proxy=True)
            transport = OllamaTransport(BASE, http, fallback=chain, use_proxy=True)
            with pytest.raises(InferenceError) as exc_info:
                await transport.generate(PAYLOAD)

        assert exc_info.value.category is ErrorCategory.SERVER

    @pytest.mark.asyncio
    async def test_forced_proxy_success(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            return httpx.Response(200, json={"models": [{"name": "mistral"}]})

        async with _http(handler) as http:
            chain = FallbackChain(http, cors_proxy=PROXY, use_proxy=True)
            transport = OllamaTransport(BASE, http, fallback=chain, use_proxy=True)
            assert await transport.list_models() == ["mistral"]

        assert seen == ["proxy.internal"]

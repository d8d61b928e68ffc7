"""HTTP transport for the Ollama inference API.

Sends generate and tags requests, classifies every failure into an
``InferenceError``, and escalates cross-origin failures of the direct
call through the fallback chain once.
"""

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Optional

import httpx

from ollama_relay.core.errors.connection import ErrorCategory, InferenceError
from ollama_relay.core.errors.transport import FallbackExhaustedError
from ollama_relay.core.resilience.classifier import ErrorClassifier
from ollama_relay.core.transport.fallback import DIRECT, FallbackChain

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/generate"
TAGS_PATH = "/api/tags"

_KIND_CATEGORIES = {
    "timeout": ErrorCategory.TIMEOUT,
    "cors": ErrorCategory.CORS,
    "network": ErrorCategory.NETWORK,
}


async def iter_response_fragments(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield ``response`` fragments from newline-delimited JSON.

    Blank and unparsable lines are skipped. Consumption stops at the first
    object carrying ``done: true``; nothing after it is read.
    """
    async for raw in lines:
        line = raw.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping unparsable stream line: %.100s", line)
            continue
        if not isinstance(data, dict):
            continue
        fragment = data.get("response")
        if isinstance(fragment, str) and fragment:
            yield fragment
        if data.get("done"):
            return


def build_generate_payload(
    model: str,
    prompt: str,
    *,
    stream: bool,
    options: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    return {
        "model": model,
        "prompt": prompt,
        "stream": stream,
        "options": dict(options or {}),
    }


class OllamaTransport:
    """Thin async client for the Ollama HTTP API.

    Args:
        base_url: Service base URL (e.g. ``http://localhost:11434``).
        http: Shared async HTTP client.
        classifier: Failure classifier for the target.
        fallback: Chain used for cross-origin escalation and forced proxying.
        use_proxy: Route every request through ``fallback``.
    """

    def __init__(
        self,
        base_url: str,
        http: httpx.AsyncClient,
        *,
        classifier: Optional[ErrorClassifier] = None,
        fallback: Optional[FallbackChain] = None,
        use_proxy: bool = False,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = http
        self.classifier = classifier or ErrorClassifier.for_url(base_url)
        self.fallback = fallback
        self.use_proxy = use_proxy and fallback is not None

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        timeout: Optional[float] = None,
        stream: bool = False,
    ) -> httpx.Response:
        url = self.url(path)

        if self.use_proxy:
            try:
                return await self.fallback.make_request(method, url, json=json_body, stream=stream)
            except FallbackExhaustedError as exc:
                raise self._chain_error(exc) from exc

        request_kwargs: dict[str, Any] = {"json": json_body}
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        request = self._http.build_request(method, url, **request_kwargs)
        try:
            return await self._http.send(request, stream=stream)
        except httpx.HTTPError as exc:
            error = self.classifier.classify(exc)
            if error.category is not ErrorCategory.CORS or self.fallback is None:
                raise error from exc
            return await self._escalate(method, url, json_body, stream, error)

    async def _escalate(
        self,
        method: str,
        url: str,
        json_body: Any,
        stream: bool,
        error: InferenceError,
    ) -> httpx.Response:
        logger.info("Direct request blocked by CORS, trying fallback strategies")
        try:
            return await self.fallback.make_request(
                method, url, json=json_body, stream=stream, skip=(DIRECT,)
            )
        except FallbackExhaustedError as exc:
            raise InferenceError(
                ErrorCategory.CORS,
                f"Direct connection failed due to CORS ({error.message}), "
                f"and fallback also failed ({exc})",
                cause=exc,
                local=self.classifier.local,
            ) from exc

    def _chain_error(self, exc: FallbackExhaustedError) -> InferenceError:
        last = exc.last_failure
        if last is not None and last.status is not None:
            return self.classifier.classify_status(last.status, cause=exc)
        category = _KIND_CATEGORIES.get(last.kind if last else "", ErrorCategory.CONNECTION)
        base = self.classifier.error_for(category)
        return self.classifier.error_for(category, f"{base.message} ({exc})", cause=exc)

    def _status_error(self, response: httpx.Response) -> InferenceError:
        return self.classifier.classify_status(response.status_code, response.reason_phrase)

    def _invalid_response(self, cause: Optional[BaseException] = None) -> InferenceError:
        return self.classifier.error_for(
            ErrorCategory.UNKNOWN,
            self.classifier.messages.invalid_response,
            cause=cause,
        )

    async def generate(self, payload: dict[str, Any], *, timeout: Optional[float] = None) -> str:
        """Run a non-streaming generation and return the response text.

        Raises:
            InferenceError: Classified transport/HTTP failure, or ``UNKNOWN``
                when the body lacks a ``response`` string.
        """
        response = await self._request(
            "POST", GENERATE_PATH, json_body={**payload, "stream": False}, timeout=timeout
        )
        if not response.is_success:
            raise self._status_error(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise self._invalid_response(exc) from exc
        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise self._invalid_response()
        return text

    async def stream_generate(
        self,
        payload: dict[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Run a streaming generation, yielding text fragments in arrival order."""
        response = await self._request(
            "POST",
            GENERATE_PATH,
            json_body={**payload, "stream": True},
            timeout=timeout,
            stream=True,
        )
        try:
            if not response.is_success:
                await response.aread()
                raise self._status_error(response)
            async for fragment in iter_response_fragments(response.aiter_lines()):
                yield fragment
        except httpx.HTTPError as exc:
            raise self.classifier.classify(exc) from exc
        finally:
            await response.aclose()

    async def list_models(self, *, timeout: Optional[float] = None) -> list[str]:
        """Return the model names reported by the tags endpoint."""
        response = await self._request("GET", TAGS_PATH, timeout=timeout)
        if not response.is_success:
            raise self._status_error(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise self._invalid_response(exc) from exc
        models = data.get("models") if isinstance(data, dict) else None
        return [m["name"] for m in models or [] if isinstance(m, dict) and m.get("name")]

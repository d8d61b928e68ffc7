"""Ordered connection strategies for bypassing cross-origin restrictions.

The chain tries ``direct``, then a configured ``custom`` intermediary,
then best-effort ``public`` intermediaries, stopping at the first success.
Public intermediaries are never used in production or when a custom one
is configured.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import quote

import httpx

from ollama_relay.core.errors.transport import (
    FallbackExhaustedError,
    StrategyError,
    StrategyFailure,
)
from ollama_relay.core.observability import audit_log, redact_url

logger = logging.getLogger(__name__)

DIRECT = "direct"
CUSTOM = "custom"
PUBLIC = "public"

KNOWN_STRATEGIES = (DIRECT, CUSTOM, PUBLIC)

ALLOWED_PROXY_HEADERS = frozenset({"content-type", "accept", "authorization", "x-requested-with"})

RECOMMENDED_PROXY_TIMEOUT = 30.0


@dataclass(frozen=True)
class PublicProxy:
    """A public CORS intermediary.

    ``format`` is ``"prefix"`` (target appended verbatim) or ``"query"``
    (target appended URL-encoded).
    """

    url: str
    format: str
    description: str
    production: bool = False


PUBLIC_PROXIES: tuple[PublicProxy, ...] = (
    PublicProxy(
        url="https://cors-anywhere.herokuapp.com/",
        format="prefix",
        description="CORS Anywhere (requires demo request)",
    ),
    PublicProxy(
        url="https://api.allorigins.win/raw?url=",
        format="query",
        description="AllOrigins (free service)",
    ),
    PublicProxy(
        url="https://corsproxy.io/?",
        format="query",
        description="CORSProxy.io (free service)",
    ),
)


def determine_strategies(
    *,
    use_proxy: bool = False,
    cors_proxy: Optional[str] = None,
    production: bool = False,
) -> list[str]:
    """Compute the strategy order from configuration.

    ``direct`` leads unless proxying is forced; when forced without a
    custom intermediary it is appended last so a path always exists.
    """
    strategies: list[str] = []
    if not use_proxy:
        strategies.append(DIRECT)
    if cors_proxy:
        strategies.append(CUSTOM)
    if not production and not cors_proxy:
        strategies.append(PUBLIC)
    if use_proxy and not cors_proxy:
        strategies.append(DIRECT)
    return strategies or [DIRECT]


def build_proxy_url(proxy_base: str, target_url: str) -> str:
    """Build the request URL for a custom intermediary."""
    encoded = quote(target_url, safe="")
    if "?target=" in proxy_base or proxy_base.endswith("/"):
        return f"{proxy_base}{encoded}"
    return f"{proxy_base}?target={encoded}"


def build_public_proxy_url(proxy: PublicProxy, target_url: str) -> str:
    """Build the request URL for a public intermediary."""
    if proxy.format == "prefix":
        return proxy.url + target_url
    return proxy.url + quote(target_url, safe="")


def filter_proxy_headers(headers: Optional[dict[str, str]]) -> dict[str, str]:
    """Keep only headers that intermediaries reliably forward."""
    if not headers:
        return {}
    return {k: v for k, v in headers.items() if k.lower() in ALLOWED_PROXY_HEADERS}


def is_cors_error(error: BaseException) -> bool:
    message = str(error).lower()
    return "cors" in message or "cross-origin" in message


class FallbackChain:
    """Try each connection strategy in order until one succeeds.

    Failures are collected, never swallowed: when the last strategy fails
    a ``FallbackExhaustedError`` enumerating each failure is raised.

    Args:
        http: Shared async HTTP client.
        cors_proxy: Custom intermediary base URL.
        use_proxy: Force requests through intermediaries.
        production: Disables public intermediaries.
        proxy_timeout: Per-strategy timeout in seconds.
        strategies: Explicit strategy order overriding the computed one.
        public_proxies: Public intermediaries to try, in order.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        cors_proxy: Optional[str] = None,
        use_proxy: bool = False,
        production: bool = False,
        proxy_timeout: float = RECOMMENDED_PROXY_TIMEOUT,
        strategies: Optional[Sequence[str]] = None,
        public_proxies: Sequence[PublicProxy] = PUBLIC_PROXIES,
    ):
        self._http = http
        self.cors_proxy = cors_proxy
        self.use_proxy = use_proxy
        self.production = production
        self.proxy_timeout = proxy_timeout
        self.public_proxies = tuple(public_proxies)
        if strategies is None:
            strategies = determine_strategies(
                use_proxy=use_proxy, cors_proxy=cors_proxy, production=production
            )
        unknown = [s for s in strategies if s not in KNOWN_STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown proxy strategy: {', '.join(unknown)}")
        self._strategies = tuple(strategies)

    @property
    def strategies(self) -> tuple[str, ...]:
        return self._strategies

    @property
    def available_public_proxies(self) -> list[PublicProxy]:
        return [p for p in self.public_proxies if not self.production or p.production]

    async def make_request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
        stream: bool = False,
        skip: Iterable[str] = (),
    ) -> httpx.Response:
        """Send a request through the first strategy that succeeds.

        Args:
            method: HTTP method.
            url: Target URL on the inference service.
            json: JSON body, if any.
            headers: Extra request headers.
            stream: Return an unread streaming response; the caller closes it.
            skip: Strategies to leave out of this run (e.g. a direct call
                that already failed).

        Raises:
            FallbackExhaustedError: Every strategy failed.
        """
        skipped = set(skip)
        failures: list[StrategyFailure] = []

        for strategy in self._strategies:
            if strategy in skipped:
                continue
            try:
                return await self._execute_strategy(
                    strategy, method, url, json=json, headers=headers, stream=stream
                )
            except StrategyError as exc:
                failures.append(
                    StrategyFailure(
                        strategy=strategy,
                        message=str(exc),
                        kind=exc.kind,
                        status=exc.status,
                    )
                )
                logger.warning("Connection strategy '%s' failed: %s", strategy, exc)
                audit_log(
                    "strategy_failed",
                    strategy=strategy,
                    kind=exc.kind,
                    status=exc.status,
                )

        audit_log(
            "fallback_exhausted",
            strategies=[f.strategy for f in failures],
            url=redact_url(url),
        )
        raise FallbackExhaustedError(failures)

    async def _execute_strategy(
        self,
        strategy: str,
        method: str,
        url: str,
        *,
        json: Any,
        headers: Optional[dict[str, str]],
        stream: bool,
    ) -> httpx.Response:
        if strategy == DIRECT:
            return await self._send(
                DIRECT, "Direct request", method, url, json=json, headers=headers, stream=stream
            )

        if strategy == CUSTOM:
            if not self.cors_proxy:
                raise StrategyError("Custom proxy not configured", strategy=CUSTOM, kind="config")
            proxy_headers = {
                "Content-Type": "application/json",
                "X-Requested-With": "XMLHttpRequest",
                "X-Proxy-Target": url,
                **filter_proxy_headers(headers),
            }
            return await self._send(
                CUSTOM,
                "Custom proxy request",
                method,
                build_proxy_url(self.cors_proxy, url),
                json=json,
                headers=proxy_headers,
                stream=stream,
            )

        if self.production:
            raise StrategyError(
                "Public proxies disabled in production", strategy=PUBLIC, kind="config"
            )
        return await self._public_request(method, url, json=json, headers=headers, stream=stream)

    async def _public_request(
        self,
        method: str,
        url: str,
        *,
        json: Any,
        headers: Optional[dict[str, str]],
        stream: bool,
    ) -> httpx.Response:
        proxies = self.available_public_proxies
        if not proxies:
            raise StrategyError(
                "No public proxies available in production environment",
                strategy=PUBLIC,
                kind="config",
            )

        proxy_headers = {
            "Content-Type": "application/json",
            "X-Requested-With": "XMLHttpRequest",
            "X-Proxy-Type": "public",
            **filter_proxy_headers(headers),
        }
        for proxy in proxies:
            try:
                logger.info("Trying public proxy: %s", proxy.description)
                return await self._send(
                    PUBLIC,
                    f"Public proxy {proxy.description}",
                    method,
                    build_public_proxy_url(proxy, url),
                    json=json,
                    headers=proxy_headers,
                    stream=stream,
                )
            except StrategyError as exc:
                logger.warning("Public proxy %s failed: %s", proxy.description, exc)

        raise StrategyError(f"All {len(proxies)} public proxies failed", strategy=PUBLIC)

    async def _send(
        self,
        strategy: str,
        label: str,
        method: str,
        url: str,
        *,
        json: Any,
        headers: Optional[dict[str, str]],
        stream: bool,
    ) -> httpx.Response:
        request = self._http.build_request(
            method, url, json=json, headers=headers, timeout=self.proxy_timeout
        )
        try:
            response = await self._http.send(request, stream=stream)
        except httpx.TimeoutException as exc:
            raise StrategyError(
                f"{label} timeout", strategy=strategy, kind="timeout", original_error=exc
            ) from exc
        except httpx.HTTPError as exc:
            if strategy == DIRECT:
                kind = "cors" if is_cors_error(exc) else "network"
            else:
                kind = "proxy"
            raise StrategyError(
                f"{label} failed: {exc}", strategy=strategy, kind=kind, original_error=exc
            ) from exc

        if response.is_success:
            return response

        await response.aclose()
        raise StrategyError(
            f"{label} failed with status {response.status_code}",
            strategy=strategy,
            kind="network" if strategy == DIRECT else "proxy",
            status=response.status_code,
        )

    def status(self) -> dict[str, Any]:
        """Configuration summary for diagnostics."""
        proxies = self.available_public_proxies
        return {
            "enabled": self.use_proxy,
            "custom_proxy_configured": bool(self.cors_proxy),
            "custom_proxy_url": redact_url(self.cors_proxy),
            "strategies": list(self._strategies),
            "public_proxies_available": len(proxies),
            "public_proxies": [
                {"description": p.description, "production": p.production} for p in proxies
            ],
            "timeout": self.proxy_timeout,
            "environment": "production" if self.production else "development",
        }

    def recommendations(self) -> list[dict[str, str]]:
        """Configuration suggestions for improving connection reliability."""
        recommendations: list[dict[str, str]] = []
        if not self.cors_proxy:
            recommendations.append(
                {
                    "type": "config",
                    "priority": "medium",
                    "message": "Consider setting up a custom CORS proxy for better reliability",
                    "action": "Set the OLLAMA_RELAY_CORS_PROXY environment variable",
                }
            )
        if self.production and not self.cors_proxy:
            recommendations.append(
                {
                    "type": "security",
                    "priority": "high",
                    "message": "Public proxies are disabled in production for security",
                    "action": "Configure a custom proxy or enable CORS on the Ollama server",
                }
            )
        if self.proxy_timeout < RECOMMENDED_PROXY_TIMEOUT:
            recommendations.append(
                {
                    "type": "performance",
                    "priority": "low",
                    "message": "Consider increasing proxy timeout for remote connections",
                    "action": "Set OLLAMA_RELAY_PROXY_TIMEOUT to 30 or higher",
                }
            )
        if self.use_proxy and not self.cors_proxy:
            recommendations.append(
                {
                    "type": "config",
                    "priority": "high",
                    "message": "Proxy is enabled but no proxy URL is configured",
                    "action": "Set OLLAMA_RELAY_CORS_PROXY or disable proxy mode",
                }
            )
        return recommendations

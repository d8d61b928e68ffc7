"""Failure classification.

Maps a raw failure (raised exception, HTTP status, cancellation) onto the
closed ``ErrorCategory`` taxonomy and attaches the user-facing message for
the target's locality.
"""

import asyncio
import ipaddress
import logging
from typing import Optional
from urllib.parse import urlsplit

import httpx

from ollama_relay.core.errors.connection import ErrorCategory, InferenceError
from ollama_relay.core.resilience.messages import MessageCatalog

logger = logging.getLogger(__name__)

_CORS_PHRASES = ("cors", "cross-origin", "opaque")
_NETWORK_PHRASES = (
    "fetch",
    "networkerror",
    "network error",
    "network is unreachable",
    "connection reset",
)
_REFUSED_PHRASES = ("refused", "econnrefused")
_DNS_PHRASES = (
    "enotfound",
    "getaddrinfo",
    "dns",
    "name or service not known",
    "nodename nor servname",
)
_SSL_PHRASES = ("ssl", "tls", "certificate")

_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain"})


def is_local_host(host: Optional[str]) -> bool:
    """Return True for loopback and private-range hosts.

    Hostnames other than ``localhost`` are treated as remote since they are
    not resolved here.
    """
    if not host:
        return True
    host = host.strip("[]").lower()
    if host in _LOCAL_HOSTNAMES:
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_loopback or address.is_private or address.is_link_local


def is_local_url(url: Optional[str]) -> bool:
    """Return True when the URL targets a loopback or private-range host."""
    if not url:
        return True
    return is_local_host(urlsplit(url).hostname)


class ErrorClassifier:
    """Classify failures for retry, fallback and messaging decisions.

    Rules are applied in order: cancellation/timeout, HTTP status,
    cross-origin phrasing, network phrasing (refined to ``CONNECTION`` for
    refused connections), refused connections, DNS phrasing, TLS phrasing,
    and finally the ``CONNECTION`` default.

    Args:
        local: Whether the target is a loopback/private host.
        messages: Message catalog used for user-facing text.
        proxy_forced: Whether requests are routed through a proxy, which
            changes the CORS message to point at the proxy.
    """

    def __init__(
        self,
        *,
        local: bool = True,
        messages: Optional[MessageCatalog] = None,
        proxy_forced: bool = False,
    ):
        self.local = local
        self.messages = messages or MessageCatalog()
        self.proxy_forced = proxy_forced

    @classmethod
    def for_url(cls, base_url: str, **kwargs) -> "ErrorClassifier":
        return cls(local=is_local_url(base_url), **kwargs)

    def error_for(
        self,
        category: ErrorCategory,
        message: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
        status: Optional[int] = None,
    ) -> InferenceError:
        """Build an error for ``category`` using the catalog message by default."""
        if message is None:
            message = self.messages.for_category(
                category,
                local=self.local,
                status=status,
                proxy_forced=self.proxy_forced,
            )
        return InferenceError(category, message, cause=cause, status=status, local=self.local)

    def classify_status(
        self,
        status: int,
        reason: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
    ) -> InferenceError:
        """Classify a non-success HTTP status."""
        if status == 404:
            category = ErrorCategory.MODEL
        elif status in (401, 403):
            category = ErrorCategory.AUTH
        elif status in (500, 502, 503):
            category = ErrorCategory.SERVER
        elif status == 504:
            category = ErrorCategory.TIMEOUT
        else:
            category = ErrorCategory.CONNECTION
        logger.debug("HTTP %s %s classified as %s", status, reason or "", category.value)
        return self.error_for(category, cause=cause, status=status)

    def classify(
        self,
        error: BaseException,
        *,
        status: Optional[int] = None,
    ) -> InferenceError:
        """Classify a raised failure.

        Already-classified ``InferenceError`` instances pass through unchanged.
        """
        if isinstance(error, InferenceError):
            return error

        if isinstance(
            error,
            (asyncio.CancelledError, asyncio.TimeoutError, TimeoutError, httpx.TimeoutException),
        ):
            return self.error_for(ErrorCategory.TIMEOUT, cause=error)

        if status is None and isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
        if status is not None:
            return self.classify_status(status, cause=error)

        text = str(error).lower()

        if any(phrase in text for phrase in _CORS_PHRASES):
            return self.error_for(ErrorCategory.CORS, cause=error)

        refused = any(phrase in text for phrase in _REFUSED_PHRASES)

        if isinstance(error, httpx.TransportError) or any(
            phrase in text for phrase in _NETWORK_PHRASES
        ):
            if refused:
                return self.error_for(
                    ErrorCategory.CONNECTION,
                    self.messages.refused(local=self.local),
                    cause=error,
                )
            if any(phrase in text for phrase in _SSL_PHRASES):
                return self.error_for(ErrorCategory.NETWORK, self.messages.ssl_error, cause=error)
            return self.error_for(ErrorCategory.NETWORK, cause=error)

        if refused:
            return self.error_for(
                ErrorCategory.CONNECTION,
                self.messages.refused(local=self.local),
                cause=error,
            )

        if any(phrase in text for phrase in _DNS_PHRASES):
            return self.error_for(ErrorCategory.NETWORK, cause=error)

        if any(phrase in text for phrase in _SSL_PHRASES):
            return self.error_for(ErrorCategory.NETWORK, self.messages.ssl_error, cause=error)

        return self.error_for(ErrorCategory.CONNECTION, cause=error)

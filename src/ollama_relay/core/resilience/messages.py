"""User-facing message catalog.

Every classified failure carries one of these messages. Most categories
have a local-target and a remote-target variant; the variant only changes
the wording, never the category or the retry decision.
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from ollama_relay.core.errors.connection import ErrorCategory


@dataclass(frozen=True)
class MessageCatalog:
    """Human-readable messages for classified failures.

    All fields have defaults so callers only override the wording they
    care about (see ``MessageCatalog.from_mapping``).
    """

    # Connection-related
    connection_error: str = (
        "I'm having trouble connecting to our AI service. Please try again in a moment."
    )
    timeout: str = "The AI service is taking longer than expected. Please try again."
    model_not_found: str = "The AI model is temporarily unavailable. Please try again later."
    service_offline: str = "Our AI assistant is currently offline. Please try again later."

    # Remote target
    cors_error: str = (
        "There's a CORS configuration issue preventing connection to the remote AI "
        "service. Please contact support."
    )
    cors_remote: str = (
        "CORS error: The remote Ollama server needs to be configured to allow requests "
        "from this domain. Set the OLLAMA_ORIGINS environment variable on the server, "
        "or configure a CORS proxy."
    )
    cors_proxy_failed: str = (
        "CORS error occurred even with proxy. Please check proxy configuration."
    )
    network_error: str = (
        "Network connection failed. Please check your internet connection and try again."
    )
    remote_service_unavailable: str = (
        "The remote AI service is currently unavailable. The service may be offline "
        "or unreachable."
    )
    remote_timeout: str = (
        "The remote AI service is taking too long to respond. This may be due to "
        "network latency or service load."
    )
    remote_connection_refused: str = (
        "Connection to the remote AI service was refused. The service may not be "
        "running or accessible."
    )

    # Local target
    local_service_not_running: str = (
        "The local AI service (Ollama) is not running. Please start Ollama and try again."
    )
    local_connection_failed: str = (
        "Failed to connect to the local AI service. Please check if Ollama is running "
        "on localhost:11434."
    )

    # Auth
    authentication_failed: str = (
        "Authentication with the AI service failed. Please check your credentials."
    )
    access_denied: str = (
        "Access to the AI service was denied. Please check your permissions."
    )

    # Misc
    ssl_error: str = "SSL/TLS connection error. Please check the server certificate."
    invalid_response: str = "Invalid response from inference service"
    fallback_mode: str = (
        "I'm currently running in limited mode due to AI service issues. I can still "
        "help with basic questions."
    )
    unknown_error: str = (
        "An unexpected error occurred. Please try again or contact support if the "
        "problem persists."
    )
    retry_exhausted: str = (
        "I've tried multiple times but can't connect to the AI service. Please try "
        "again later."
    )

    @classmethod
    def from_mapping(cls, overrides: Optional[Mapping[str, Any]] = None) -> "MessageCatalog":
        """Build a catalog from a partial mapping, ignoring unknown keys."""
        if not overrides:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v) for k, v in overrides.items() if k in known})

    def for_category(
        self,
        category: ErrorCategory,
        *,
        local: bool,
        status: Optional[int] = None,
        proxy_forced: bool = False,
    ) -> str:
        """Pick the message variant for a category and target locality."""
        if category is ErrorCategory.TIMEOUT:
            return self.timeout if local else self.remote_timeout
        if category is ErrorCategory.MODEL:
            return self.model_not_found
        if category is ErrorCategory.AUTH:
            return self.access_denied if status == 403 else self.authentication_failed
        if category is ErrorCategory.SERVER:
            return self.service_offline if local else self.remote_service_unavailable
        if category is ErrorCategory.CORS:
            if proxy_forced:
                return self.cors_proxy_failed
            return self.cors_error if local else self.cors_remote
        if category is ErrorCategory.NETWORK:
            return self.local_connection_failed if local else self.network_error
        if category is ErrorCategory.CONNECTION:
            return self.connection_error if local else self.remote_service_unavailable
        return self.unknown_error

    def refused(self, *, local: bool) -> str:
        return self.local_service_not_running if local else self.remote_connection_refused

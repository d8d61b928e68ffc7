"""Audit logging and redaction for resilience events.

Structured audit events (retries, timeouts, queue evictions, strategy
failures, connection state changes) are written to a separate logger so
they can be filtered independently of ordinary module logging.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "ollama_relay.audit"

_SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "x-api-key", "cookie"})


class AuditEventType(Enum):
    """Types of audit events emitted by the resilience layer."""

    RETRY_ATTEMPT = "retry_attempt"
    RETRIES_EXHAUSTED = "retries_exhausted"
    REQUEST_TIMEOUT = "request_timeout"
    TIMEOUT_WARNING = "timeout_warning"
    REQUEST_QUEUED = "request_queued"
    QUEUE_EVICTION = "queue_eviction"
    QUEUE_CLEARED = "queue_cleared"
    STRATEGY_FAILED = "strategy_failed"
    FALLBACK_EXHAUSTED = "fallback_exhausted"
    CONNECTION_STATE_CHANGE = "connection_state_change"
    QUALITY_CHANGE = "quality_change"
    MODEL_MISSING = "model_missing"


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: AuditEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": self.details,
        }
        if self.request_id:
            result["request_id"] = self.request_id
        return result


class AuditLogger:
    """
    Structured audit logging for resilience events.

    Audit logs are written to a separate logger for easy filtering.
    """

    def __init__(self, name: str = AUDIT_LOGGER_NAME):
        self._logger = logging.getLogger(name)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        self._logger.info("AUDIT: %s", event.event_type.value, extra={"audit": event.to_dict()})


# Global audit logger
_audit = AuditLogger()


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger."""
    return _audit


def audit_log(event_type: str, **details: Any) -> None:
    """
    Convenience function for audit logging.

    Args:
        event_type: Type of event (retry_attempt, request_timeout, queue_eviction,
                    strategy_failed, connection_state_change, ...)
        **details: Additional details to include in the audit log. A
                   ``request_id`` detail is lifted onto the event itself.
    """
    try:
        event_enum = AuditEventType(event_type)
    except ValueError:
        logger.debug("Unknown audit event type %r", event_type)
        return

    request_id = details.pop("request_id", None)
    get_audit_logger().log(
        AuditEvent(event_type=event_enum, details=details, request_id=request_id)
    )


def redact_url(url: Optional[str]) -> Optional[str]:
    """Strip userinfo credentials from a URL before it is logged.

    Args:
        url: URL that may embed ``user:password@`` credentials.

    Returns:
        The URL with any password replaced by ``****``.
    """
    if not url:
        return url
    parts = urlsplit(url)
    if parts.password is None and parts.username is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    userinfo = parts.username or ""
    if parts.password is not None:
        userinfo = f"{userinfo}:****"
    return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of *headers* with sensitive values redacted."""
    return {
        key: ("****" if key.lower() in _SENSITIVE_HEADERS else value)
        for key, value in headers.items()
    }

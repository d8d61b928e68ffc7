"""JSON envelope output for CLI commands.

Every command prints exactly one object on stdout::

    {"success": true, "data": {...}, "error": null}

Errors exit with status 1 and carry ``error_code``, ``error_type`` and
``remediation`` inside ``data``.
"""

import json
import sys
from typing import Any, NoReturn, Optional

import click

from ollama_relay.core.errors.connection import ErrorCategory, InferenceError

_CATEGORY_CODES: dict[ErrorCategory, tuple[str, str]] = {
    ErrorCategory.CONNECTION: ("UNAVAILABLE", "Start the Ollama service or check the configured URL"),
    ErrorCategory.NETWORK: ("NETWORK_ERROR", "Check network connectivity and DNS resolution"),
    ErrorCategory.TIMEOUT: ("TIMEOUT", "Retry later or raise OLLAMA_RELAY_TIMEOUT"),
    ErrorCategory.MODEL: ("MODEL_NOT_FOUND", "Pull the model with 'ollama pull <model>'"),
    ErrorCategory.CORS: ("CORS_ERROR", "Set OLLAMA_ORIGINS on the server or configure a CORS proxy"),
    ErrorCategory.AUTH: ("AUTH_ERROR", "Check the credentials accepted by the server"),
    ErrorCategory.SERVER: ("SERVER_ERROR", "Check the inference server logs"),
    ErrorCategory.UNKNOWN: ("UNKNOWN_ERROR", "Run again with --verbose for details"),
}


def _emit(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, default=str))


def emit_success(data: dict[str, Any]) -> None:
    """Print a success envelope."""
    _emit({"success": True, "data": data, "error": None})


def emit_error(
    message: str,
    *,
    code: str,
    error_type: str,
    remediation: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> NoReturn:
    """Print an error envelope and exit with status 1."""
    data: dict[str, Any] = {"error_code": code, "error_type": error_type}
    if remediation:
        data["remediation"] = remediation
    if details:
        data["details"] = details
    _emit({"success": False, "data": data, "error": message})
    sys.exit(1)


def emit_inference_error(error: InferenceError, details: Optional[dict[str, Any]] = None) -> NoReturn:
    """Print the envelope for a categorized inference failure."""
    code, remediation = _CATEGORY_CODES[error.category]
    merged = error.to_dict()
    if details:
        merged.update(details)
    emit_error(
        error.message,
        code=code,
        error_type=error.category.value,
        remediation=remediation,
        details=merged,
    )

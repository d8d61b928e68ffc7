"""Parsing helpers for configuration values.

Provides boolean parsing and an environment reader that collects
unparsable values as validation errors instead of failing on the first.
"""

import logging
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "OLLAMA_RELAY_"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _try_parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return None


class _EnvReader:
    """Typed access to ``OLLAMA_RELAY_*`` variables.

    Unset or blank variables yield the default. Unparsable values yield the
    default too and are appended to ``errors``.
    """

    def __init__(self, environ: Mapping[str, str], prefix: str = ENV_PREFIX):
        self._environ = environ
        self._prefix = prefix
        self.errors: list[str] = []

    def name(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def raw(self, key: str) -> Optional[str]:
        value = self._environ.get(self.name(key))
        if value is None or not value.strip():
            return None
        return value.strip()

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.raw(key)
        return default if value is None else value

    def get_int(self, key: str, default: int) -> int:
        value = self.raw(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            self.errors.append(f"{self.name(key)} must be an integer, got {value!r}")
            return default

    def get_float(self, key: str, default: Optional[float]) -> Optional[float]:
        value = self.raw(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            self.errors.append(f"{self.name(key)} must be a number, got {value!r}")
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.raw(key)
        if value is None:
            return default
        parsed = _try_parse_bool(value)
        if parsed is None:
            self.errors.append(f"{self.name(key)} must be a boolean, got {value!r}")
            return default
        return parsed

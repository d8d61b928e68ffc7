"""Configuration error classes."""

from typing import Optional


class ConfigurationError(ValueError):
    """Client configuration failed validation.

    Attributes:
        field: Offending field when a single field is at fault
        errors: Every validation problem found
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.field = field
        self.errors = list(errors or [])

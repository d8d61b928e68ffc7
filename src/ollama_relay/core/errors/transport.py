"""Connection strategy error classes.

Raised by the fallback chain when a direct call or an intermediary fails.
"""

from dataclasses import dataclass
from typing import Optional


class StrategyError(Exception):
    """A single connection strategy failed.

    Attributes:
        strategy: Strategy name ("direct", "custom", "public")
        kind: Failure kind ("proxy", "timeout", "network", "cors", "config")
        status: HTTP status code if the strategy got a response
        original_error: The underlying exception if available
    """

    def __init__(
        self,
        message: str,
        *,
        strategy: str,
        kind: str = "proxy",
        status: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.strategy = strategy
        self.kind = kind
        self.status = status
        self.original_error = original_error


@dataclass(frozen=True)
class StrategyFailure:
    """Record of one failed strategy inside a fallback run."""

    strategy: str
    message: str
    kind: str = "proxy"
    status: Optional[int] = None


class FallbackExhaustedError(Exception):
    """Every strategy in the fallback chain failed.

    The message enumerates each per-strategy failure in the order tried.
    """

    def __init__(self, failures: list[StrategyFailure]):
        self.failures = list(failures)
        details = "; ".join(f"{f.strategy}: {f.message}" for f in self.failures)
        super().__init__(
            f"All {len(self.failures)} connection strategies failed ({details})"
        )

    @property
    def last_failure(self) -> Optional[StrategyFailure]:
        return self.failures[-1] if self.failures else None

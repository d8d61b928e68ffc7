"""Request queue error classes."""

from typing import Optional


class QueueCapacityError(Exception):
    """Base class for queue capacity failures.

    Attributes:
        request_id: Request that was rejected or evicted
        capacity: Configured maximum queue length
    """

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        capacity: Optional[int] = None,
    ):
        super().__init__(message)
        self.request_id = request_id
        self.capacity = capacity


class QueueFullError(QueueCapacityError):
    """Queue is at capacity and holds no low-priority entry to evict."""


class QueueEvictedError(QueueCapacityError):
    """A queued low-priority request was removed to make room."""


class QueueClearedError(Exception):
    """A queued request was rejected because the queue was cleared."""

    def __init__(self, reason: str, request_id: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.request_id = request_id


class QueueStateError(RuntimeError):
    """The queue scheduler was driven into an invalid state."""

"""Exception hierarchy shared by the monitor, dispatcher and upstream guards.

- AlertServiceError: base for all service errors
- ValidationError: malformed input (bad enum, oversized query, bad variables)
- NotFoundError: alert or destination does not exist / is not owned by caller
- RateLimitError: quota exceeded, carries ``retry_after`` seconds
- UpstreamError: upstream fetch failed or returned an error payload
- MetricUnavailableError: the metrics provider could not read a position
- OperationTimeoutError: a bounded operation exceeded its deadline
- DispatchError: notification delivery failed
- DestinationUnreachableError: destination invalid, blocked or unknown
- TransientDispatchError: network / provider failure, safe to retry
"""

from __future__ import annotations


class AlertServiceError(Exception):
    """Base exception for all alert service errors."""


class ValidationError(AlertServiceError):
    """Raised when caller input is malformed. Never retried."""


class NotFoundError(AlertServiceError):
    """Raised when an alert or destination handle cannot be found."""


class RateLimitError(AlertServiceError):
    """Raised when a caller exceeds its request quota."""

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = max(int(retry_after), 1)


class UpstreamError(AlertServiceError):
    """Raised when an upstream fetch fails or returns an error payload."""


class MetricUnavailableError(UpstreamError):
    """Raised when a position metric cannot be read."""


class OperationTimeoutError(UpstreamError):
    """Raised when a bounded operation exceeds its deadline."""


class DispatchError(AlertServiceError):
    """Raised when a notification cannot be delivered.

    ``transient`` tells the caller whether retrying later can succeed.
    """

    transient: bool = False

    def __init__(self, message: str, destination: str | None = None) -> None:
        super().__init__(message)
        self.destination = destination


class DestinationUnreachableError(DispatchError):
    """The destination is invalid, unknown to the bot, or has blocked it."""

    transient = False


class TransientDispatchError(DispatchError):
    """Network or provider failure (timeouts, 429, 5xx)."""

    transient = True

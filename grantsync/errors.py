"""
Exception hierarchy shared by connectors, the orchestrator and the API.

Retry classification works on these types (``kind`` and ``status_code``)
rather than on error message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Coarse failure categories for outbound calls."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UPSTREAM = "upstream"
    INVALID_RESPONSE = "invalid_response"


class GrantSyncError(Exception):
    """Base exception for grantsync errors."""


class RetryableError(GrantSyncError):
    """A transient failure (network or timeout) that may succeed on retry."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.NETWORK):
        super().__init__(message)
        self.kind = kind
        self.status_code: int | None = None


class SourceHTTPError(GrantSyncError):
    """
    An external registry answered with a non-2xx status.

    ``kind`` is derived from the status so callers and logs can tell a
    rate limit from an outage without parsing the message.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.kind = kind_for_status(status_code)


class SourceResponseError(GrantSyncError):
    """The registry answered 2xx but the payload is unusable or reports an error."""

    kind = ErrorKind.INVALID_RESPONSE
    status_code: int | None = None


class MissingExternalIdError(GrantSyncError):
    """A raw record carries none of the fields a stable external id is derived from."""

    def __init__(self, data_source: str):
        super().__init__(f"No external id field in raw record from {data_source}")
        self.data_source = data_source


class CustomerNotFoundError(GrantSyncError):
    """The requested customer does not exist."""

    def __init__(self, customer_id: str):
        super().__init__(f"Customer not found: {customer_id}")
        self.customer_id = customer_id


def kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP status to an ErrorKind."""
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (408, 504):
        return ErrorKind.TIMEOUT
    if status_code == 503:
        return ErrorKind.UNAVAILABLE
    return ErrorKind.UPSTREAM

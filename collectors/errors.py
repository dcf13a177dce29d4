"""Error taxonomy for ads platform requests.

Every failure coming out of a collector is one of these classes so that
callers can branch on the classification instead of on HTTP details.
"""

from typing import Optional

RATE_LIMITED = "rate_limited"
TIMEOUT = "timeout"
GENERIC = "generic"


class ClassifiedError(Exception):
    """Base class for classified ads platform failures.

    Attributes:
        kind: One of "rate_limited", "timeout" or "generic".
        endpoint: API path that produced the failure, if known.
    """

    kind = GENERIC

    def __init__(self, message: str, endpoint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint


class RateLimitError(ClassifiedError):
    """The platform answered 429, or a local cooldown is in effect."""

    kind = RATE_LIMITED


class FetchTimeoutError(ClassifiedError):
    """The request exceeded its client-side timeout."""

    kind = TIMEOUT

    def __init__(self, endpoint: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Request to {endpoint} timed out after {round(timeout_seconds)}s",
            endpoint=endpoint,
        )
        self.timeout_seconds = timeout_seconds


class ApiError(ClassifiedError):
    """Any other failure. The message is surfaced to users verbatim."""

    kind = GENERIC

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, endpoint=endpoint)
        self.status_code = status_code


class MutationError(ApiError):
    """A mutation endpoint reported failure for an otherwise valid request."""

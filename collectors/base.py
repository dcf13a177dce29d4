"""Base client for the ads platform REST API.

This module provides the base class with token handling, timeouts, error
classification and retry logic that is shared across all specialized clients.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from collectors.errors import ApiError, ClassifiedError, FetchTimeoutError, RateLimitError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0


class BaseAdsPlatformClient:
    """Base async client for the ads platform API.

    This class handles token injection and provides common functionality for
    API interactions with explicit timeouts and classified errors.

    Attributes:
        base_url: Root URL of the platform API (or of the proxy in front of it).
        account_id: The advertiser account the client acts on.
        max_retries: Default retry budget for 429/5xx responses.
        base_delay: Base delay in seconds for exponential backoff.

    Example:
        >>> class MyClient(BaseAdsPlatformClient):
        ...     async def fetch_data(self):
        ...         return await self._request("GET", "/campaigns", timeout=8.0)
    """

    MAX_RETRIES = 0
    BASE_DELAY = 1.0
    MAX_DELAY = 8.0

    def __init__(
        self,
        base_url: str,
        account_id: str,
        access_token: Optional[str] = None,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the ads platform client.

        Args:
            base_url: Root URL of the API.
            account_id: Advertiser account ID.
            access_token: Bearer token, sent on every request when set.
            max_retries: Default retry attempts for rate-limited/5xx requests.
            base_delay: Base delay in seconds for exponential backoff.
            transport: Optional httpx transport (tests use MockTransport).

        Raises:
            ValueError: If account_id is empty.
        """
        if not account_id:
            raise ValueError("account_id is required")

        self.base_url = base_url.rstrip("/")
        self.account_id = account_id
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._access_token = access_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy initialization of the shared HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._access_token:
                headers["Authorization"] = f"Bearer {self._access_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: Optional[int] = None,
    ) -> Any:
        """Execute an API request and classify any failure.

        429 and 5xx responses are retried with exponential backoff and jitter
        while the retry budget lasts. Timeouts are retried the same way but are
        never reported as rate limits.

        Args:
            method: HTTP method.
            path: Path relative to base_url.
            params: Query parameters. The account id is always added.
            json: JSON body for writes.
            timeout: Client-side timeout in seconds for each attempt.
            max_retries: Overrides the client's default retry budget.

        Returns:
            The decoded JSON response.

        Raises:
            RateLimitError: Final attempt answered 429.
            FetchTimeoutError: Final attempt exceeded the timeout.
            ApiError: Any other failure.
        """
        retries = self.max_retries if max_retries is None else max_retries
        query = {"accountId": self.account_id}
        if params:
            query.update({k: v for k, v in params.items() if v is not None})

        client = self._get_client()
        last_error: Optional[ClassifiedError] = None

        for attempt in range(retries + 1):
            if attempt > 0:
                await asyncio.sleep(self._backoff_delay(attempt - 1))

            try:
                response = await client.request(
                    method, path, params=query, json=json, timeout=timeout
                )
            except httpx.TimeoutException:
                last_error = FetchTimeoutError(path, timeout)
                if attempt < retries:
                    logger.warning(f"Timeout on {path}. Retry {attempt + 1}/{retries}")
                    continue
                raise last_error
            except httpx.HTTPError as ex:
                raise ApiError(f"Request to {path} failed: {ex}", endpoint=path) from ex

            if response.status_code == 429 or response.status_code >= 500:
                if response.status_code == 429:
                    last_error = RateLimitError(
                        "Rate limited, please wait a moment and try again",
                        endpoint=path,
                    )
                else:
                    last_error = ApiError(
                        f"API error: {response.status_code} {response.reason_phrase}",
                        endpoint=path,
                        status_code=response.status_code,
                    )
                if attempt < retries:
                    logger.warning(
                        f"{response.status_code} on {path}. Retry {attempt + 1}/{retries}"
                    )
                    continue
                raise last_error

            if response.status_code >= 400:
                raise ApiError(
                    self._error_message(response),
                    endpoint=path,
                    status_code=response.status_code,
                )

            return response.json()

        if last_error:
            raise last_error
        raise RuntimeError("Unexpected state in retry logic")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter, capped at MAX_DELAY."""
        delay = min(self.base_delay * (2**attempt), self.MAX_DELAY)
        jitter = delay * 0.1 * (0.5 - time.time() % 1)
        return delay + jitter

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Best-effort extraction of the platform's error message."""
        try:
            body = response.json()
        except ValueError:
            return f"API error: {response.status_code} {response.reason_phrase}"
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
        return f"API error: {response.status_code} {response.reason_phrase}"

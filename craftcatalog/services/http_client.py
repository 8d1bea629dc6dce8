"""HTTP client service mapping upstream responses onto the error taxonomy."""

from typing import Any

import httpx
import structlog

from .errors import (
    NetworkError,
    PayloadError,
    RateLimitedError,
    UpstreamClientError,
    UpstreamServerError,
)

log = structlog.stdlib.get_logger()


class HttpClientService:
    """Async JSON HTTP client.

    Retries and request spacing are the caller's business (``RetryPolicy``
    and ``RateGate``); this class only performs a single request and turns
    its outcome into a value or a classified exception.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "craftcatalog/0.1 (catalog curation)",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client service.

        Args:
            timeout: Request timeout in seconds
            user_agent: User-Agent header sent with every request
            transport: Optional transport override (used by tests)
        """
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": user_agent,
                "Accept": "application/json",
            },
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            transport=transport,
        )

        log.info("HTTP client service initialized", timeout=timeout)

    async def get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Make a single GET request and decode the JSON body.

        Args:
            url: The URL to request
            params: Optional query parameters
            headers: Optional additional headers

        Returns:
            Decoded JSON body

        Raises:
            RateLimitedError: On 429
            UpstreamServerError: On 5xx
            UpstreamClientError: On any other non-success status
            NetworkError: On connectivity failures and timeouts
            PayloadError: If the body is not valid JSON
        """
        response = await self.request("GET", url, params=params, headers=headers)
        return self.decode_json(response, url)

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Perform one request and raise a classified error on failure."""
        log.debug("Making HTTP request", method=method, url=url, params=params)
        try:
            response = await self._client.request(method, url, params=params, headers=headers, json=json)
        except httpx.RequestError as e:
            log.warning(
                "HTTP request failed",
                method=method,
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise NetworkError(
                message="Unable to reach the upstream source.",
                original_error=e,
                url=url,
            ) from e

        self.raise_for_status(response, url)

        log.debug(
            "HTTP request successful",
            method=method,
            url=url,
            status_code=response.status_code,
            content_length=len(response.content),
        )
        return response

    @staticmethod
    def raise_for_status(response: httpx.Response, url: str) -> None:
        """Raise the classified error for a non-success response.

        429 must be checked before the generic non-success branch.
        """
        status_code = response.status_code
        if status_code == 429:
            retry_after = response.headers.get("retry-after")
            try:
                retry_after_seconds = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_seconds = None
            log.warning("Rate limited by upstream", url=url, retry_after=retry_after_seconds)
            raise RateLimitedError(url=url, retry_after=retry_after_seconds)

        if response.is_success:
            return

        if status_code >= 500:
            log.warning("Upstream server error", url=url, status_code=status_code)
            raise UpstreamServerError(status_code, url=url)

        log.error("Client error, not retrying", url=url, status_code=status_code)
        raise UpstreamClientError(status_code, url=url)

    @staticmethod
    def decode_json(response: httpx.Response, url: str | None = None) -> Any:
        """Decode a response body as JSON, raising ``PayloadError`` on garbage."""
        try:
            return response.json()
        except ValueError as e:
            raise PayloadError(
                "Upstream returned a body that is not valid JSON",
                url=url,
                original_error=e,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._client.aclose()
        log.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClientService":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

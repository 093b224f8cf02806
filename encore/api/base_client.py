"""
Base API Client

Shared HTTP request handling for every upstream service the engine talks to
(audio node, catalog service, recommendation providers): session lifecycle,
outbound pacing, retries with jittered backoff and typed errors.
"""

import asyncio
import json
import random
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp
import structlog

from .rate_limiter import UnifiedRateLimiter

logger = structlog.get_logger(__name__)


class APIRequestError(Exception):
    """An upstream HTTP call failed."""

    def __init__(self, service: str, message: str, status: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status


class APIRateLimitError(APIRequestError):
    """Upstream answered 429 and no retries were left."""

    def __init__(self, service: str, retry_after: Optional[float] = None):
        super().__init__(service, "rate limited", status=429)
        self.retry_after = retry_after


class APITimeoutError(APIRequestError):
    """Upstream did not answer within the client timeout."""


class BaseAPIClient(ABC):
    """
    Base HTTP client with unified request handling, pacing and error handling.

    Subclasses provide ``_extract_api_error`` for errors reported inside a
    200 body. The aiohttp session is opened by ``open()`` (or ``async with``)
    and closed by ``close()``.
    """

    def __init__(
        self,
        base_url: str,
        rate_limiter: Optional[UnifiedRateLimiter] = None,
        timeout: float = 10,
        service_name: str = "api"
    ):
        """
        Initialize base API client.

        Args:
            base_url: Base URL for the API
            rate_limiter: Outbound pacing shared by clients of the same service
            timeout: Total request timeout in seconds
            service_name: Service name for logging and identification
        """
        self.base_url = base_url.rstrip('/')
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.service_name = service_name
        self.session: Optional[aiohttp.ClientSession] = None

        self.logger = logger.bind(
            service=service_name,
            component="BaseAPIClient",
            base_url=self.base_url
        )

    async def open(self) -> None:
        """Create the HTTP session if it does not exist yet."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self.logger.debug("API client session started")

    async def close(self) -> None:
        """Close the HTTP session."""
        if self.session and not self.session.closed:
            await self.session.close()
            self.logger.debug("API client session closed")
        self.session = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _make_request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        retries: int = 2
    ) -> Dict[str, Any]:
        """
        Make a paced HTTP request with error handling and retries.

        Timeouts, transport errors and 5xx answers are retried with jittered
        exponential backoff. A 429 is retried after ``Retry-After`` while
        retries remain, then raised as ``APIRateLimitError``. Other 4xx
        answers fail immediately.

        Args:
            endpoint: API endpoint (relative to base_url) or absolute URL
            params: Query parameters
            method: HTTP method
            headers: Additional headers
            json_body: JSON payload for POST/PUT/PATCH
            retries: Number of retry attempts

        Returns:
            Parsed JSON response data

        Raises:
            APIRequestError: For unrecoverable errors
        """
        if not self.session:
            self.logger.error("Client not initialized")
            raise RuntimeError(f"{self.service_name} client not initialized. Call open() first.")

        if self.rate_limiter is not None:
            await self.rate_limiter.wait_if_needed()

        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            url = endpoint
        else:
            url = f"{self.base_url}/{endpoint.lstrip('/')}" if endpoint else self.base_url

        request_headers = dict(headers or {})
        request_headers.setdefault('User-Agent', f'Encore-{self.service_name}/1.0')

        for attempt in range(retries + 1):
            try:
                self.logger.debug(
                    "Making API request",
                    method=method,
                    endpoint=endpoint,
                    attempt=attempt + 1,
                    max_attempts=retries + 1
                )

                async with self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_body,
                    headers=request_headers
                ) as response:

                    if response.status == 200:
                        data = await self._parse_response(response)

                        error_info = self._extract_api_error(data)
                        if error_info:
                            self.logger.error(
                                "API error in response body",
                                error=error_info,
                                endpoint=endpoint
                            )
                            raise APIRequestError(self.service_name, error_info, status=response.status)

                        return data

                    if response.status == 429:
                        wait_time = self._calculate_backoff_time(response, attempt)
                        self.logger.warning(
                            "Rate limited",
                            attempt=attempt + 1,
                            wait_time=wait_time,
                            endpoint=endpoint,
                            retry_after=response.headers.get('Retry-After')
                        )
                        if attempt == retries:
                            raise APIRateLimitError(self.service_name, retry_after=wait_time)
                        await asyncio.sleep(wait_time)
                        continue

                    self.logger.warning(
                        "HTTP error",
                        status=response.status,
                        endpoint=endpoint,
                        attempt=attempt + 1
                    )
                    if response.status < 500 or attempt == retries:
                        raise APIRequestError(
                            self.service_name,
                            f"HTTP {response.status}",
                            status=response.status
                        )

            except asyncio.TimeoutError:
                self.logger.warning(
                    "Request timeout",
                    attempt=attempt + 1,
                    endpoint=endpoint,
                    timeout=self.timeout
                )
                if attempt == retries:
                    raise APITimeoutError(
                        self.service_name,
                        f"timed out after {retries + 1} attempts"
                    )

            except aiohttp.ClientError as e:
                self.logger.warning(
                    "HTTP client error",
                    error=str(e),
                    error_type=type(e).__name__,
                    attempt=attempt + 1,
                    endpoint=endpoint
                )
                if attempt == retries:
                    raise APIRequestError(self.service_name, f"client error: {e}")

            await self._exponential_backoff(attempt)

        raise APIRequestError(self.service_name, f"request failed after {retries + 1} attempts")

    async def _parse_response(self, response: aiohttp.ClientResponse) -> Dict[str, Any]:
        """
        Parse API response. Can be overridden by subclasses for custom parsing.

        Args:
            response: HTTP response object

        Returns:
            Parsed response data
        """
        try:
            return await response.json(content_type=None)
        except (json.JSONDecodeError, aiohttp.ContentTypeError) as e:
            self.logger.error("Invalid JSON response", error=str(e))
            raise APIRequestError(self.service_name, "returned invalid JSON", status=response.status)

    @abstractmethod
    def _extract_api_error(self, data: Any) -> Optional[str]:
        """
        Extract API-specific error information from response data.

        Args:
            data: Parsed response data

        Returns:
            Error message if found, None otherwise
        """

    def _calculate_backoff_time(self, response: aiohttp.ClientResponse, attempt: int) -> float:
        """Seconds to wait after a 429: ``Retry-After`` when present, exponential otherwise."""
        retry_after = response.headers.get('Retry-After')
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return min(2 ** attempt, 60)

    async def _exponential_backoff(self, attempt: int, base_delay: float = 0.5):
        """
        Sleep with exponential backoff and jitter.

        Args:
            attempt: Current attempt number (0-based)
            base_delay: Base delay in seconds
        """
        delay = base_delay * (2 ** attempt)
        total_delay = min(delay + random.uniform(0.1, 0.3) * delay, 30.0)

        self.logger.debug("Backing off before retry", attempt=attempt + 1, delay=total_delay)
        await asyncio.sleep(total_delay)

    async def health_check(self) -> Dict[str, Any]:
        """
        Report whether the client can reach its service.

        Subclasses override ``_health_probe`` with a cheap service-specific call.
        """
        if not self.session:
            return {
                "service": self.service_name,
                "status": "not_initialized",
                "healthy": False
            }

        start_time = time.monotonic()
        try:
            await self._health_probe()
        except (APIRequestError, RuntimeError) as e:
            self.logger.warning("Health check failed", error=str(e))
            return {
                "service": self.service_name,
                "status": "unhealthy",
                "healthy": False,
                "error": str(e)
            }

        return {
            "service": self.service_name,
            "status": "healthy",
            "healthy": True,
            "response_time_ms": int((time.monotonic() - start_time) * 1000)
        }

    async def _health_probe(self) -> None:
        await self._make_request("", retries=0)

    def get_service_info(self) -> Dict[str, Any]:
        """Service configuration and session status."""
        return {
            "service_name": self.service_name,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "session_active": self.session is not None and not self.session.closed,
            "rate_limiter": self.rate_limiter.get_current_usage() if self.rate_limiter else None
        }

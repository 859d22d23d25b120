"""Base client for the ad-server reporting gateway.

This module provides the base class with authentication, HTTP client
initialization, and retry logic shared by the reporting clients. The
gateway fronts Google Ad Manager with a GraphQL API: every call is a POST
of a ``{query, variables}`` document.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from collectors.errors import ProtocolError, RemoteRequestError

logger = logging.getLogger(__name__)


class BaseReportingClient:
    """Base async client for the GraphQL reporting gateway.

    This class handles API key authentication and provides common
    functionality for gateway interactions with rate limiting and error
    mapping onto the report error hierarchy.

    Attributes:
        endpoint: GraphQL endpoint URL.
        timeout: Per-request timeout in seconds.
        max_retries: Maximum retry attempts for rate-limited requests.
        base_delay: Base delay in seconds for exponential backoff.

    Example:
        >>> class MyClient(BaseReportingClient):
        ...     async def fetch_network(self):
        ...         return await self._execute("query { currentNetwork { id } }")
    """

    DEFAULT_TIMEOUT = 30.0
    MAX_RETRIES = 3
    BASE_DELAY = 1.0
    API_KEY_HEADER = "x-api-key"

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the reporting client.

        Args:
            endpoint: GraphQL endpoint of the reporting gateway.
            api_key: API key sent with every gateway request.
            timeout: Per-request timeout in seconds.
            max_retries: Maximum retry attempts for rate-limited requests.
            base_delay: Base delay in seconds for exponential backoff.
            transport: Optional httpx transport (used by tests).

        Raises:
            ValueError: If endpoint is empty.
        """
        if not endpoint:
            raise ValueError("endpoint is required")

        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._api_key = api_key
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def _get_http(self) -> httpx.AsyncClient:
        """Lazy initialization of the shared HTTP client."""
        if self._http is None:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers[self.API_KEY_HEADER] = self._api_key
            self._http = httpx.AsyncClient(
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _execute(self, document: str, variables: Optional[dict] = None) -> dict[str, Any]:
        """Execute a GraphQL document with exponential backoff for rate limits.

        Args:
            document: GraphQL query document.
            variables: Query variables.

        Returns:
            The ``data`` object of the response.

        Raises:
            RemoteRequestError: On transport failures, non-2xx responses (after
                retries for HTTP 429) or GraphQL errors.
            ProtocolError: If the response is not a GraphQL JSON payload.
        """
        http = self._get_http()
        payload = {"query": document, "variables": variables or {}}

        for attempt in range(self.max_retries + 1):
            try:
                response = await http.post(self.endpoint, json=payload)
            except httpx.TimeoutException as ex:
                raise RemoteRequestError(f"Reporting gateway timed out: {ex}") from ex
            except httpx.HTTPError as ex:
                raise RemoteRequestError(f"Reporting gateway request failed: {ex}") from ex

            if response.status_code == 429 and attempt < self.max_retries:
                # Exponential backoff with jitter
                delay = self.base_delay * (2**attempt)
                jitter = delay * 0.1 * (0.5 - time.time() % 1)
                wait_time = delay + jitter

                logger.warning(
                    f"Rate limited (429). Retry {attempt + 1}/{self.max_retries} "
                    f"after {wait_time:.2f}s"
                )
                await asyncio.sleep(wait_time)
                continue

            if response.status_code == 429:
                logger.error(f"Rate limit exceeded after {self.max_retries} retries")

            if not response.is_success:
                raise RemoteRequestError(
                    f"Reporting gateway returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            return self._extract_data(response)

        raise RuntimeError("Unexpected state in retry logic")

    @staticmethod
    def _extract_data(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as ex:
            raise ProtocolError("Reporting gateway returned a non-JSON body") from ex

        if not isinstance(body, dict):
            raise ProtocolError("Reporting gateway returned an unexpected body")

        errors = body.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise RemoteRequestError(f"Reporting gateway error: {messages}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise ProtocolError("Reporting gateway response has no data")
        return data

#!/usr/bin/env python3
"""HTTP Client for the delivery marketplace Merchant API.

MarketplaceClient sends requests authenticated with one tenant's cycle token.
A 204 comes back as None; 5xx and network failures are retried with backoff
and everything else surfaces as a typed SyncEngineError.

Events and orders are not its business: EventPoller, MarketplaceOrdersAPI
and AcknowledgmentManager build on top of it. Tokens are never refreshed
here; a 401 raises TokenExpiredError and the next cycle gets a new token.

Usage:
    async with MarketplaceClient(token, base_url) as client:
        events = await client.get("/events:polling")   # None on 204
        await client.post("/events/acknowledgment", [{"id": "e1"}])
"""
import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

from ..sync.domain.entities import AccessToken
from .exceptions import (
    APIError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class MarketplaceClient:
    """Async HTTP client bound to a single AccessToken.

    Designed to be used as an async context manager so the HTTP session
    lives exactly as long as one tenant's sync cycle:

        async with MarketplaceClient(token, base_url) as client:
            data = await client.get("/orders/123")

    Attributes:
        token: Per-cycle bearer token
        base_url: Base URL for API requests
    """

    def __init__(
        self,
        token: AccessToken,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "MarketplaceClient":
        self._session = aiohttp.ClientSession(
            # One request in flight per tenant
            connector=aiohttp.TCPConnector(limit=2),
            timeout=aiohttp.ClientTimeout(total=self.timeout, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}{endpoint}"

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "Authorization": self.token.authorization_header,
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Make a single HTTP request (no retry logic).

        Returns:
            Parsed JSON body, or None for 204 / empty bodies

        Raises:
            APIError: If response status is not 2xx or the body is not JSON
            RuntimeError: If called outside of async context manager
            ConnectionError: If connection to server fails
            TimeoutError: If request times out
        """
        if not self._session:
            raise RuntimeError(
                "MarketplaceClient must be used as async context manager: "
                "async with MarketplaceClient(...) as client:"
            )

        url = self._url(endpoint)

        try:
            async with self._session.request(
                method=method,
                url=url,
                headers=self._headers(headers),
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = (await response.read()).decode("utf-8", errors="replace")
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )

                if response.status == 204:
                    return None

                raw = await response.read()
                if not raw or not raw.strip():
                    return None

                # Invalid UTF-8 raises UnicodeDecodeError, a ValueError
                try:
                    return json.loads(raw)
                except ValueError as e:
                    raise APIError(
                        f"Malformed JSON from {method} {endpoint}",
                        status_code=response.status,
                        endpoint=endpoint,
                        method=method,
                        response_body=raw.decode("utf-8", errors="replace"),
                        recoverable=False,
                        cause=e,
                    )

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=self.timeout,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Pick the exception type for a non-2xx status."""
        if status == 401:
            return TokenExpiredError(
                f"Marketplace rejected token {self.token.token_id} on {endpoint}",
                details={"endpoint": endpoint, "token_id": self.token.token_id},
            )

        context = {"endpoint": endpoint, "method": method, "response_body": response_body}
        label = f"{method} {endpoint}"

        if status == 404:
            return NotFoundError(resource_type="Resource", resource_id=endpoint, **context)
        if status == 429:
            seconds = int(retry_after) if retry_after and retry_after.isdigit() else None
            return RateLimitError(f"{label} throttled", retry_after=seconds, **context)
        if status in (400, 422):
            return ValidationError(f"{label} rejected as invalid", status_code=status, **context)
        if status >= 500:
            return ServerError(f"{label} returned HTTP {status}", status_code=status, **context)
        return APIError(f"{label} returned HTTP {status}", status_code=status, **context)

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Make an HTTP request, retrying 5xx and network errors.

        Everything else (401, 404, 429, 4xx) is raised immediately: the
        cycle is short and the next one retries naturally.
        """
        backoff_delay = self.retry_delay

        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._request(method, endpoint, params, json_body, headers)

            except (ServerError, NetworkError) as e:
                if attempt >= self.max_retries:
                    raise
                logger.warning(
                    f"{type(e).__name__} on {method} {endpoint}, retrying in "
                    f"{backoff_delay}s (attempt {attempt}/{self.max_retries})"
                )
                if backoff_delay > 0:
                    await asyncio.sleep(backoff_delay)
                backoff_delay = min(backoff_delay * 2, 30.0)

        # Unreachable: the loop either returns or raises
        raise APIError(
            "Request failed after all retries",
            status_code=0,
            endpoint=endpoint,
            method=method,
        )

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Make a GET request.

        Returns:
            Parsed JSON response, or None on 204 No Content
        """
        return await self._request_with_retry("GET", endpoint, params=params, headers=headers)

    async def post(
        self,
        endpoint: str,
        json_body: Any,
        params: Optional[dict] = None,
    ) -> Any:
        """Make a POST request with a JSON body (object or array)."""
        return await self._request_with_retry(
            "POST", endpoint, params=params, json_body=json_body
        )

"""
Shared HTTP plumbing for the hosted backend clients.

The mail provider functions, storage and signature records all live
behind the same hosted backend, authenticated with the session's bearer
token plus the project API key.
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from email_suite.config import get_settings
from email_suite.core.exceptions import (
    AuthenticationError,
    GatewayError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

settings = get_settings()

RETRYABLE_ERRORS = (httpx.TransportError, RateLimitedError)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


def raise_for_response(response: httpx.Response) -> None:
    """Map an HTTP error status onto the suite's gateway errors."""
    if response.status_code < 400:
        return

    message = _error_message(response)
    if response.status_code in (401, 403):
        raise AuthenticationError(message, status_code=response.status_code)
    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitedError(
            message,
            retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    raise GatewayError(f"API error: {message}", status_code=response.status_code)


class BackendClient:
    """
    Base client for the hosted backend.

    Owns one ``httpx.AsyncClient`` for its lifetime; constructed once per
    session and closed on logout.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_wait: Optional[wait_base] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.gateway_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.gateway_api_key
        self.access_token = access_token
        self.timeout = timeout or settings.gateway_timeout
        self.max_retries = max_retries or settings.gateway_max_retries
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        """Create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["apikey"] = self.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not connected. Call connect() first.")
        return self._client

    def set_access_token(self, access_token: Optional[str]) -> None:
        """Swap the session token, e.g. after a refresh."""
        self.access_token = access_token

    def _auth_headers(self) -> dict[str, str]:
        if not self.access_token:
            raise AuthenticationError("Not authenticated")
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        headers = {**kwargs.pop("headers", {}), **self._auth_headers()}
        response = await self.client.request(method, endpoint, headers=headers, **kwargs)
        raise_for_response(response)
        return response

    async def _request(
        self,
        method: str,
        endpoint: str,
        retry: bool = True,
        **kwargs,
    ) -> Any:
        """
        Make an authenticated request and decode the JSON body.

        Transport failures and rate limiting are retried when ``retry`` is
        set; non-idempotent calls must pass ``retry=False``.
        """
        self._auth_headers()

        try:
            if not retry:
                return await self._decode(method, endpoint, **kwargs)

            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=self.retry_wait,
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                reraise=True,
            ):
                with attempt:
                    return await self._decode(method, endpoint, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{method} {endpoint} failed: {e}")
            raise GatewayError(f"Network error: {e}") from e

    async def _decode(self, method: str, endpoint: str, **kwargs) -> Any:
        response = await self._send(method, endpoint, **kwargs)
        if not response.content:
            return None
        return response.json()

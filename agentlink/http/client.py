"""HTTP transport shared by every remote call of one client session."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agentlink.config import DEFAULT_BASE_URL
from agentlink.core.errors import TransportError
from agentlink.http.executor import DEFAULT_RETRIES, DEFAULT_TIMEOUT_MS, execute
from agentlink.http.middleware import (
    ApiKeyMiddleware,
    Middleware,
    PaymentChallengeMiddleware,
    PaymentSigner,
    compose,
)

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin wrapper around ``httpx.AsyncClient`` with middleware, timeouts and retries."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        api_key: Optional[str] = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        retries: int = DEFAULT_RETRIES,
        signer: Optional[PaymentSigner] = None,
        middlewares: Optional[List[Middleware]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_ms = timeout_ms
        self.retries = retries
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout_ms / 1000)
        self.payments = PaymentChallengeMiddleware(signer)

        chain: List[Middleware] = []
        if api_key:
            chain.append(ApiKeyMiddleware(api_key))
        chain.extend(middlewares or [])
        chain.append(self.payments)
        self._handler = compose(self._send, chain)

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    async def _send(self, request: httpx.Request) -> httpx.Response:
        return await self._client.send(request, stream=True)

    async def fetch(self, request: httpx.Request) -> httpx.Response:
        """Send through the middleware chain. The caller must close the response."""
        return await self._handler(request)

    def build_request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> httpx.Request:
        return self._client.build_request(
            method, self.url_for(path), json=json, headers=headers, timeout=timeout
        )

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        request = self.build_request(method, path, json=body)
        response = await self.fetch(request)
        try:
            await response.aread()
            if not response.is_success:
                raise TransportError(
                    f"HTTP {response.status_code} for {request.url}",
                    response.status_code,
                    response.text,
                )
            content_type = response.headers.get("content-type", "")
            if "application/json" in content_type or "text/json" in content_type:
                return response.json()
            return response.text
        finally:
            await response.aclose()

    async def get_json(self, path: str) -> Any:
        return await execute(
            lambda: self._request("GET", path),
            idempotent=True,
            max_retries=self.retries,
            timeout_ms=self.timeout_ms,
        )

    async def post_json(self, path: str, body: Any = None) -> Any:
        return await execute(lambda: self._request("POST", path, body), timeout_ms=self.timeout_ms)

    @asynccontextmanager
    async def open_stream(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streamed response; only the opening is bound by the deadline."""
        # Streams may idle between frames, so reads carry no deadline.
        stream_timeout = httpx.Timeout(self.timeout_ms / 1000, read=None)
        request = self.build_request(method, path, json=json, headers=headers, timeout=stream_timeout)
        response = await execute(lambda: self.fetch(request), timeout_ms=self.timeout_ms)
        try:
            if not response.is_success:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise TransportError(
                    f"Streaming HTTP {response.status_code} for {request.url}",
                    response.status_code,
                    body,
                )
            yield response
        finally:
            await response.aclose()

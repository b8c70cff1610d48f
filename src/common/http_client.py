"""Async HTTP fetch collaborator used by the registry client.

``HttpFetcher`` is the narrow contract the registry client consumes; the
production implementation wraps an aiohttp session. Tests substitute a fake
fetcher that serves canned documents.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import aiohttp

from constants import Constants
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    """Raw response returned by a fetcher."""

    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True for 2xx status codes."""
        return 200 <= self.status < 300


class HttpFetcher(Protocol):
    """Raw HTTP GET capability."""

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        ...


class AiohttpFetcher:
    """HttpFetcher backed by a lazily created aiohttp session."""

    def __init__(self, timeout: int = Constants.REQUEST_TIMEOUT, max_connections: int = 20):
        """Initialize the fetcher.

        Args:
            timeout: Total request timeout in seconds.
            max_connections: Connection pool size.
        """
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_connections = max_connections
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=self._max_connections)
            self._session = aiohttp.ClientSession(timeout=self._timeout, connector=connector)

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _build_request_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        request_headers = dict(headers or {})
        request_headers.setdefault("User-Agent", Constants.USER_AGENT)
        request_headers.setdefault("Accept", Constants.REGISTRY_ACCEPT_HEADER)
        return request_headers

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        """GET ``url`` and read the whole body.

        Transport failures propagate as ``aiohttp.ClientError`` or
        ``asyncio.TimeoutError``; the caller decides how to recover.
        """
        if self._session is None:
            await self.start()
        assert self._session is not None

        safe_target = safe_url(url)
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                    ),
                )
            async with self._session.get(url, headers=self._build_request_headers(headers)) as response:
                body = await response.read()
                result = HttpResponse(
                    status=response.status,
                    body=body,
                    headers={k: str(v) for k, v in response.headers.items()},
                )
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        outcome="success" if result.ok else "non_2xx",
                        status_code=result.status,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                    ),
                )
        return result

    async def __aenter__(self) -> "AiohttpFetcher":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()

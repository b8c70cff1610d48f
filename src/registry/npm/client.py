"""NPM registry client: package metadata with TTL caching."""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
from typing import Dict, Optional

import aiohttp

from cache.store import MetadataCache
from common.http_client import HttpFetcher
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from errors import RegistryUnavailable

from .models import PackageMetadata

logger = logging.getLogger(__name__)


def package_url(registry_url: str, name: str) -> str:
    """Registry document URL for ``name``; scoped names keep the ``@`` and escape ``/``."""
    encoded = urllib.parse.quote(name, safe="@")
    return f"{registry_url.rstrip('/')}/{encoded}"


class RegistryClient:
    """Fetches package metadata from an npm-style registry.

    Documents are cached as raw bytes under ``metadata:{name}`` for the
    cache's metadata TTL. Concurrent requests for the same name share one
    in-flight fetch.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        cache: Optional[MetadataCache] = None,
        registry_url: str = Constants.REGISTRY_URL_NPM,
    ):
        """Initialize the registry client.

        Args:
            fetcher: Raw HTTP GET capability.
            cache: Shared metadata cache.
            registry_url: Registry base URL.
        """
        self._fetcher = fetcher
        self._cache = cache if cache is not None else MetadataCache()
        self._registry_url = registry_url.rstrip("/")
        self._inflight: Dict[str, "asyncio.Future[PackageMetadata]"] = {}
        self.network_fetches = 0
        self.cache_hits = 0

    @property
    def registry_url(self) -> str:
        return self._registry_url

    @property
    def cache(self) -> MetadataCache:
        return self._cache

    async def fetch_metadata(self, name: str) -> PackageMetadata:
        """Return the metadata document for ``name``.

        Raises:
            RegistryUnavailable: On non-2xx status, transport error or an
                undecodable document.
        """
        cached = self._cache.get_metadata(name)
        if cached is not None:
            self.cache_hits += 1
            if is_debug_enabled(logger):
                logger.debug(
                    "Metadata cache hit",
                    extra=extra_context(event="cache_hit", component="registry_client", package=name),
                )
            return self._decode(name, cached)

        pending = self._inflight.get(name)
        if pending is not None:
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The caller that started the fetch was cancelled, not this one.
                logger.debug("Shared fetch for %s was cancelled; fetching again", name)
                return await self.fetch_metadata(name)

        loop = asyncio.get_running_loop()
        future: "asyncio.Future[PackageMetadata]" = loop.create_future()
        self._inflight[name] = future
        try:
            metadata = await self._fetch_and_store(name)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unawaited shared failure is not reported.
            future.exception()
            raise
        else:
            future.set_result(metadata)
            return metadata
        finally:
            self._inflight.pop(name, None)

    async def _fetch_and_store(self, name: str) -> PackageMetadata:
        url = package_url(self._registry_url, name)
        safe_target = safe_url(url)
        self.network_fetches += 1

        with Timer() as timer:
            try:
                response = await self._fetcher.fetch(url, headers={"Accept": Constants.REGISTRY_ACCEPT_HEADER})
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                logger.warning(
                    "HTTP error",
                    extra=extra_context(
                        event="http_error",
                        outcome="exception",
                        target=safe_target,
                        package_manager="npm",
                    ),
                )
                raise RegistryUnavailable(name, 0, str(exc) or type(exc).__name__) from exc

        if not response.ok:
            logger.warning(
                "HTTP non-2xx for %s",
                name,
                extra=extra_context(
                    event="http_response",
                    outcome="handled_non_2xx",
                    status_code=response.status,
                    duration_ms=timer.duration_ms(),
                    target=safe_target,
                    package_manager="npm",
                ),
            )
            raise RegistryUnavailable(name, response.status)

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    outcome="success",
                    status_code=response.status,
                    duration_ms=timer.duration_ms(),
                    package_manager="npm",
                ),
            )

        metadata = self._decode(name, response.body)
        self._cache.put_metadata(name, response.body)
        return metadata

    @staticmethod
    def _decode(name: str, payload: bytes) -> PackageMetadata:
        try:
            return PackageMetadata.from_json(name, json.loads(payload.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, ValueError) as exc:
            raise RegistryUnavailable(name, 0, f"invalid registry document: {exc}") from exc

"""Tests for the aiohttp-backed fetcher."""

import asyncio

from common.http_client import AiohttpFetcher, HttpResponse


class TestHttpResponse:
    """Tests for HttpResponse."""

    def test_ok_for_2xx_only(self):
        assert HttpResponse(status=200, body=b"").ok
        assert HttpResponse(status=204, body=b"").ok
        assert not HttpResponse(status=304, body=b"").ok
        assert not HttpResponse(status=404, body=b"").ok


class TestAiohttpFetcherHeaders:
    """Tests for request header defaults."""

    def test_defaults_added(self):
        headers = AiohttpFetcher()._build_request_headers(None)
        assert headers["User-Agent"] == "vnpm/0.1"
        assert "application/json" in headers["Accept"]

    def test_caller_headers_preserved(self):
        headers = AiohttpFetcher()._build_request_headers({"Accept": "application/json", "Authorization": "Bearer t"})
        assert headers["Accept"] == "application/json"
        assert headers["Authorization"] == "Bearer t"


class TestAiohttpFetcherSession:
    """Tests for session lifecycle."""

    def test_context_manager_opens_and_closes_session(self):
        async def _run():
            fetcher = AiohttpFetcher(timeout=5)
            async with fetcher:
                opened = fetcher._session is not None and not fetcher._session.closed
            return opened, fetcher._session

        opened, session = asyncio.run(_run())
        assert opened is True
        assert session is None

    def test_stop_without_start(self):
        asyncio.run(AiohttpFetcher().stop())

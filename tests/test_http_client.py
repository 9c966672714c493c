import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vidhub.utils.http_client import (
    BROWSER_HEADERS,
    SharedHTTPClient,
    UpstreamPage,
    cleanup_http_client,
    get_http_client,
)


def _response(status=200, reason="OK", text="<html></html>"):
    response = MagicMock()
    response.status = status
    response.reason = reason
    response.text = AsyncMock(return_value=text)
    return response


def _session_returning(response):
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.closed = False
    session.request = MagicMock(return_value=context)
    session.close = AsyncMock()
    return session


def _bind(client: SharedHTTPClient, session) -> None:
    client._session = session
    client._loop = asyncio.get_running_loop()


class TestSharedHTTPClient:
    """Test SharedHTTPClient session handling and page fetches."""

    @pytest.mark.asyncio
    async def test_get_session_creates_session(self):
        """A session is created on first use."""
        client = SharedHTTPClient()

        with patch("aiohttp.ClientSession") as mock_session_class:
            mock_session = MagicMock()
            mock_session.closed = False
            mock_session.close = AsyncMock()
            mock_session_class.return_value = mock_session

            assert await client.get_session() is mock_session
            assert await client.get_session() is mock_session

            mock_session_class.assert_called_once()
            await client.close()

    @pytest.mark.asyncio
    async def test_get_session_replaces_closed_session(self):
        client = SharedHTTPClient()
        stale = MagicMock()
        stale.closed = True
        _bind(client, stale)

        with patch("aiohttp.ClientSession") as mock_session_class:
            fresh = MagicMock()
            mock_session_class.return_value = fresh

            assert await client.get_session() is fresh

    @pytest.mark.asyncio
    async def test_get_fetch(self):
        """GET requests send browser headers and no body."""
        client = SharedHTTPClient()
        session = _session_returning(_response(text="<p>ok</p>"))
        _bind(client, session)

        page = await client.fetch_page("https://example.com/?q=1")

        assert page == UpstreamPage(status=200, reason="OK", text="<p>ok</p>")
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("GET", "https://example.com/?q=1")
        assert kwargs["data"] is None
        assert kwargs["headers"]["User-Agent"] == BROWSER_HEADERS["User-Agent"]
        assert "Content-Type" not in kwargs["headers"]

    @pytest.mark.asyncio
    async def test_post_fetch_sends_form(self):
        """POST payloads are sent form-encoded with stringified values."""
        client = SharedHTTPClient()
        session = _session_returning(_response())
        _bind(client, session)

        await client.fetch_page("https://example.com/s", post=True, data={"wd": "cats", "page": 2})

        method = session.request.call_args.args[0]
        kwargs = session.request.call_args.kwargs
        assert method == "POST"
        assert kwargs["data"] == {"wd": "cats", "page": "2"}
        assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"

    @pytest.mark.asyncio
    async def test_post_fetch_with_raw_body(self):
        client = SharedHTTPClient()
        session = _session_returning(_response())
        _bind(client, session)

        await client.fetch_page("https://example.com/s", post=True, data="wd=cats")

        assert session.request.call_args.kwargs["data"] == "wd=cats"

    @pytest.mark.asyncio
    async def test_error_status_is_reported_not_raised(self):
        client = SharedHTTPClient()
        _bind(client, _session_returning(_response(status=503, reason="Service Unavailable", text="")))

        page = await client.fetch_page("https://example.com/")

        assert page.ok is False
        assert page.status == 503

    @pytest.mark.asyncio
    async def test_request_errors_propagate(self):
        client = SharedHTTPClient()
        session = MagicMock()
        session.closed = False
        session.request = MagicMock(side_effect=OSError("connection reset"))
        _bind(client, session)

        with pytest.raises(OSError):
            await client.fetch_page("https://example.com/")

    @pytest.mark.asyncio
    async def test_close_session(self):
        client = SharedHTTPClient()
        session = _session_returning(_response())
        _bind(client, session)

        await client.close()

        session.close.assert_awaited_once()
        assert client._session is None


class TestGlobalHTTPClient:
    @pytest.mark.asyncio
    async def test_get_http_client_is_shared(self):
        first = get_http_client(5)
        second = get_http_client()

        assert first is second
        assert first._timeout == 5

        await cleanup_http_client()
        assert get_http_client() is not first
        await cleanup_http_client()


def test_upstream_page_ok_range():
    assert UpstreamPage(200, "OK", "").ok is True
    assert UpstreamPage(302, "Found", "").ok is True
    assert UpstreamPage(404, "Not Found", "").ok is False

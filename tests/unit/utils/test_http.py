"""Unit tests for utils.http module.

Tests:
- read_bounded() chunk accumulation and size enforcement
- read_bounded_json() parsing
- fetch_json() request shape and error propagation
"""

import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from zapview.utils.http import fetch_json, read_bounded, read_bounded_json


def _mock_response(*chunks: bytes) -> MagicMock:
    """Build a mock aiohttp.ClientResponse that yields chunks then EOF.

    Each positional argument is a chunk returned by successive ``content.read()``
    calls. An implicit ``b""`` is appended to signal EOF.
    """
    resp = MagicMock()
    content = MagicMock()
    content.read = AsyncMock(side_effect=[*chunks, b""])
    resp.content = content
    return resp


def _mock_session(*chunks: bytes, status: int = 200) -> MagicMock:
    """Build a mock aiohttp.ClientSession whose get() yields the response."""
    response = _mock_response(*chunks)
    response.raise_for_status = MagicMock()
    if status >= 400:
        response.raise_for_status.side_effect = aiohttp.ClientResponseError(
            request_info=MagicMock(), history=(), status=status
        )

    context_response = AsyncMock()
    context_response.__aenter__ = AsyncMock(return_value=response)
    context_response.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.get = MagicMock(return_value=context_response)
    return session


# =============================================================================
# read_bounded() Tests
# =============================================================================


class TestReadBounded:
    """Tests for read_bounded()."""

    async def test_single_read(self) -> None:
        assert await read_bounded(_mock_response(b"hello"), max_size=1024) == b"hello"

    async def test_chunked(self) -> None:
        resp = _mock_response(b"ab", b"cd", b"ef")
        assert await read_bounded(resp, max_size=1024) == b"abcdef"

    async def test_exact_limit(self) -> None:
        assert await read_bounded(_mock_response(b"x" * 10), max_size=10) == b"x" * 10

    async def test_oversized_across_chunks(self) -> None:
        resp = _mock_response(b"x" * 6, b"x" * 6)
        with pytest.raises(ValueError, match="too large"):
            await read_bounded(resp, max_size=10)

    async def test_empty_body(self) -> None:
        assert await read_bounded(_mock_response(), max_size=10) == b""


# =============================================================================
# read_bounded_json() Tests
# =============================================================================


class TestReadBoundedJson:
    async def test_parses_object(self) -> None:
        body = json.dumps({"count": 3}).encode()
        assert await read_bounded_json(_mock_response(body), max_size=1024) == {"count": 3}

    async def test_invalid_json(self) -> None:
        with pytest.raises(ValueError):
            await read_bounded_json(_mock_response(b"{nope"), max_size=1024)


# =============================================================================
# fetch_json() Tests
# =============================================================================


class TestFetchJson:
    async def test_success(self) -> None:
        session = _mock_session(b'{"names": {"bob": "abc"}}')

        data = await fetch_json(
            session,
            "https://example.com/.well-known/nostr.json",
            timeout=5.0,
            params={"name": "bob"},
        )

        assert data == {"names": {"bob": "abc"}}
        args, kwargs = session.get.call_args
        assert args == ("https://example.com/.well-known/nostr.json",)
        assert kwargs["params"] == {"name": "bob"}
        assert kwargs["timeout"].total == 5.0
        assert kwargs["headers"]["Accept"] == "application/json"

    async def test_http_error_propagates(self) -> None:
        session = _mock_session(b"{}", status=503)
        with pytest.raises(aiohttp.ClientResponseError):
            await fetch_json(session, "https://example.com", timeout=1.0)

    async def test_size_limit(self) -> None:
        session = _mock_session(b"x" * 100)
        with pytest.raises(ValueError, match="too large"):
            await fetch_json(session, "https://example.com", timeout=1.0, max_size=10)

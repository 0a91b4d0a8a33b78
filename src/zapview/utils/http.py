"""HTTP helpers for the aggregation service and NIP-05 lookups.

Response bodies are read with a size cap so a misbehaving server cannot
exhaust memory; JSON is parsed only after the whole (bounded) body has been
received.

See Also:
    [StatsClient][zapview.services.stats.StatsClient]: Fetches aggregation
        baselines through [fetch_json][zapview.utils.http.fetch_json].
    [ProfileResolver.verify_nip05()][zapview.services.profiles.ProfileResolver.verify_nip05]:
        Reads ``/.well-known/nostr.json`` through the same helper.
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp


DEFAULT_MAX_BODY = 64 * 1024


async def read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body, failing once it exceeds *max_size*.

    Chunks are accumulated until EOF, which handles chunked
    transfer-encoding where a single read may return fewer bytes than
    requested.

    Raises:
        ValueError: If the response body exceeds *max_size*.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(response: aiohttp.ClientResponse, max_size: int) -> Any:
    """Read and parse a JSON body with size enforcement.

    Raises:
        ValueError: If the body exceeds *max_size* or is not valid JSON.
    """
    return json.loads(await read_bounded(response, max_size))


async def fetch_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    timeout: float,  # noqa: ASYNC109
    max_size: int = DEFAULT_MAX_BODY,
    params: dict[str, str] | None = None,
) -> Any:
    """GET *url* and return its parsed JSON body.

    Args:
        session: Shared client session.
        url: Absolute URL.
        timeout: Total request timeout in seconds.
        max_size: Maximum accepted body size in bytes.
        params: Optional query parameters.

    Raises:
        aiohttp.ClientError: On connection failures and non-2xx statuses.
        TimeoutError: If the request exceeds *timeout*.
        ValueError: If the body is too large or not valid JSON.
    """
    async with session.get(
        url,
        params=params,
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers={"Accept": "application/json"},
    ) as response:
        response.raise_for_status()
        return await read_bounded_json(response, max_size)

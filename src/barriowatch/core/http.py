"""
HTTP helpers.

This module centralizes the small amount of HTTP client logic used by the backend adapter.

Design goals:
- Small surface area (one JSON request helper on a shared `httpx.AsyncClient`).
- Deterministic defaults (timeout + User-Agent).
- Raise on non-2xx so callers can decide how to fail (adapters wrap into `StoreError`).
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "barriowatch/0.1.0 (+https://local)"


def build_async_client(
    base_url: str,
    *,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` with the default User-Agent applied."""
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        headers=request_headers,
        timeout=timeout_seconds,
        transport=transport,
    )


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    json: Any = None,
    content: bytes | None = None,
    headers: dict[str, str] | None = None,
) -> Any:
    """Send a request and return the decoded JSON body (None for empty bodies).

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If a non-empty response body is not valid JSON.
    """
    resp = await client.request(method, url, params=params, json=json, content=content, headers=headers)
    resp.raise_for_status()
    if not resp.content:
        return None
    return resp.json()

"""
Async HTTP access for the service clients (geocoding, routing, place search).

Every query suspends only here. One short-lived `httpx.AsyncClient` is used per call,
because queries are user-triggered and rare. There is no retry: a failed call is
reported once and the caller turns it into a `TransportError`.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

import httpx

DEFAULT_USER_AGENT = "geodash/0.1.0 (+https://local)"


async def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
) -> Any:
    """GET `url` and return the decoded JSON body.

    Raises:
        httpx.HTTPError: Transport failure or a non-2xx status.
        ValueError: The body is not JSON.
    """
    merged = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json", **(headers or {})}
    async with httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True) as client:
        response = await client.get(url, params=params, headers=merged)
        response.raise_for_status()
        return response.json()


def describe_http_error(exc: httpx.HTTPError) -> str:
    """Short human-readable reason for a failed call, naming the host."""
    try:
        host = urlsplit(str(exc.request.url)).netloc or "service"
    except RuntimeError:
        # `.request` is unset on errors raised outside a request context.
        host = "service"

    if isinstance(exc, httpx.HTTPStatusError):
        return f"{host} answered HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return f"{host} timed out"
    if isinstance(exc, httpx.ConnectError):
        return f"could not connect to {host}"
    return f"{host}: {exc}"

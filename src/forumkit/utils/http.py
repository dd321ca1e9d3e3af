"""Shared HTTP client factory for httpx-based collaborators."""

from __future__ import annotations

import httpx

USER_AGENT = "forumkit/0.1"


def create_http_client(
    *,
    base_url: str = "",
    api_token: str | None = None,
    user_agent: str = USER_AGENT,
    timeout: float = 10.0,
    **kwargs,
) -> httpx.Client:
    """Create an httpx.Client with JSON headers and optional bearer auth."""
    headers = {"User-Agent": user_agent, "Accept": "application/json"}
    if api_token:
        headers["Authorization"] = f"Bearer {api_token}"
    if "headers" in kwargs:
        headers.update(kwargs.pop("headers"))
    return httpx.Client(
        base_url=base_url,
        headers=headers,
        timeout=timeout,
        **kwargs,
    )

"""Shared httpx plumbing for provider adapters."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

DEFAULT_TIMEOUT = 60.0


async def post_json(
    url: str,
    payload: Dict[str, Any],
    *,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """POST a JSON body and return the decoded JSON response.

    Raises httpx.HTTPStatusError on non-2xx responses.
    """
    async with httpx.AsyncClient() as client:
        resp = await client.post(
            url,
            headers=headers or {},
            params=params,
            json=payload,
            timeout=timeout,
        )
        resp.raise_for_status()
    return resp.json()

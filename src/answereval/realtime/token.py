"""Ephemeral client secrets for the OpenAI Realtime API."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

from answereval.config import DEFAULT_REALTIME_MODEL
from answereval.errors import ConfigurationError, RealtimeError

logger = logging.getLogger(__name__)

CLIENT_SECRETS_URL = "https://api.openai.com/v1/realtime/client_secrets"


@dataclass
class RealtimeToken:
    token: str
    expires_at: Optional[int] = None


async def get_realtime_token(
    model: str = DEFAULT_REALTIME_MODEL,
    api_key: Optional[str] = None,
    timeout: float = 30.0,
) -> RealtimeToken:
    """Exchange the long-lived API key for a short-lived realtime token."""
    api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
    if not api_key:
        raise ConfigurationError("OPENAI_API_KEY environment variable is not set")

    logger.debug("Requesting realtime token for model %s", model)
    async with httpx.AsyncClient() as client:
        resp = await client.post(
            CLIENT_SECRETS_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json={"session": {"type": "realtime", "model": model}},
            timeout=timeout,
        )
    if resp.status_code != 200:
        raise RealtimeError(f"OpenAI API error: {resp.status_code} {resp.reason_phrase}")

    data = resp.json()
    if not data.get("value"):
        raise RealtimeError("Invalid response from OpenAI API: no token value")
    return RealtimeToken(token=data["value"], expires_at=data.get("expires_at"))

"""Anthropic adapter — Messages API, structured output via forced tool use."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from answereval.errors import ConfigurationError
from answereval.providers._http import DEFAULT_TIMEOUT, post_json

ANTHROPIC_VERSION = "2023-06-01"


@dataclass
class AnthropicProvider:
    """Talks to the Anthropic Messages API."""

    api_key: str
    base_url: str = "https://api.anthropic.com/v1"
    timeout: float = DEFAULT_TIMEOUT
    max_tokens: int = 2048

    supports_embeddings = False
    supports_structured_output = True

    def _headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}

    async def _messages(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await post_json(
            f"{self.base_url.rstrip('/')}/messages",
            body,
            headers=self._headers(),
            timeout=self.timeout,
        )

    async def generate_text(
        self,
        model_id: str,
        prompt: str,
        *,
        temperature: float,
        top_p: Optional[float] = None,
        top_k: Optional[int] = None,
    ) -> str:
        body: Dict[str, Any] = {
            "model": model_id,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if top_p is not None:
            body["top_p"] = top_p
        if top_k is not None:
            body["top_k"] = top_k
        data = await self._messages(body)
        return "".join(
            block.get("text", "") for block in data.get("content", [])
            if block.get("type") == "text"
        )

    async def generate_object(
        self,
        model_id: str,
        prompt: str,
        schema: Dict[str, Any],
        *,
        temperature: float,
        schema_name: str = "response",
    ) -> Dict[str, Any]:
        data = await self._messages({
            "model": model_id,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "tools": [{
                "name": schema_name,
                "description": "Record the structured response.",
                "input_schema": schema,
            }],
            "tool_choice": {"type": "tool", "name": schema_name},
        })
        for block in data.get("content", []):
            if block.get("type") == "tool_use":
                return dict(block.get("input") or {})
        raise ValueError("No tool_use block in Anthropic response")

    async def embed(self, model_id: str, text: str) -> List[float]:
        raise ConfigurationError(
            "Embedding not supported for provider: anthropic. Use openai or google."
        )

"""OpenAI adapter — chat completions, JSON-schema outputs and embeddings."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from answereval.providers._http import DEFAULT_TIMEOUT, post_json


@dataclass
class OpenAIProvider:
    """Talks to the OpenAI REST API."""

    api_key: str
    base_url: str = "https://api.openai.com/v1"
    timeout: float = DEFAULT_TIMEOUT

    supports_embeddings = True
    supports_structured_output = True

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _chat(self, body: Dict[str, Any]) -> str:
        data = await post_json(
            f"{self.base_url.rstrip('/')}/chat/completions",
            body,
            headers=self._headers(),
            timeout=self.timeout,
        )
        return data["choices"][0]["message"]["content"] or ""

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
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if top_p is not None:
            body["top_p"] = top_p
        # top_k is not part of the chat completions API
        return await self._chat(body)

    async def generate_object(
        self,
        model_id: str,
        prompt: str,
        schema: Dict[str, Any],
        *,
        temperature: float,
        schema_name: str = "response",
    ) -> Dict[str, Any]:
        content = await self._chat({
            "model": model_id,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema, "strict": True},
            },
        })
        return json.loads(content)

    async def embed(self, model_id: str, text: str) -> List[float]:
        data = await post_json(
            f"{self.base_url.rstrip('/')}/embeddings",
            {"model": model_id, "input": text},
            headers=self._headers(),
            timeout=self.timeout,
        )
        return [float(v) for v in data["data"][0]["embedding"]]

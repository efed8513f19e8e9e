"""Google Gemini adapter — generateContent and embedContent."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from answereval.providers._http import DEFAULT_TIMEOUT, post_json


def _to_gemini_schema(schema: Any) -> Any:
    """Gemini's responseSchema is an OpenAPI subset without additionalProperties."""
    if isinstance(schema, dict):
        return {
            k: _to_gemini_schema(v) for k, v in schema.items()
            if k != "additionalProperties"
        }
    if isinstance(schema, list):
        return [_to_gemini_schema(v) for v in schema]
    return schema


@dataclass
class GoogleProvider:
    """Talks to the Generative Language API."""

    api_key: str
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = DEFAULT_TIMEOUT

    supports_embeddings = True
    supports_structured_output = True

    async def _generate(self, model_id: str, body: Dict[str, Any]) -> str:
        data = await post_json(
            f"{self.base_url.rstrip('/')}/models/{model_id}:generateContent",
            body,
            params={"key": self.api_key},
            timeout=self.timeout,
        )
        parts = data["candidates"][0]["content"].get("parts", [])
        return "".join(p.get("text", "") for p in parts)

    async def generate_text(
        self,
        model_id: str,
        prompt: str,
        *,
        temperature: float,
        top_p: Optional[float] = None,
        top_k: Optional[int] = None,
    ) -> str:
        config: Dict[str, Any] = {"temperature": temperature}
        if top_p is not None:
            config["topP"] = top_p
        if top_k is not None:
            config["topK"] = top_k
        return await self._generate(model_id, {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": config,
        })

    async def generate_object(
        self,
        model_id: str,
        prompt: str,
        schema: Dict[str, Any],
        *,
        temperature: float,
        schema_name: str = "response",
    ) -> Dict[str, Any]:
        text = await self._generate(model_id, {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "responseMimeType": "application/json",
                "responseSchema": _to_gemini_schema(schema),
            },
        })
        return json.loads(text)

    async def embed(self, model_id: str, text: str) -> List[float]:
        data = await post_json(
            f"{self.base_url.rstrip('/')}/models/{model_id}:embedContent",
            {"model": f"models/{model_id}", "content": {"parts": [{"text": text}]}},
            params={"key": self.api_key},
            timeout=self.timeout,
        )
        return [float(v) for v in data["embedding"]["values"]]

"""LLM provider protocol, registry and model-string handling.

Model identifiers are ``"<provider>:<model-id>"``, e.g. ``"openai:gpt-4o-mini"``.
Credentials come from the environment (``OPENAI_API_KEY``,
``ANTHROPIC_API_KEY``, ``GOOGLE_AI_API_KEY``) and are looked up on first use.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Protocol

import jsonschema

from answereval.config import API_KEY_ENV, DEFAULT_EMBEDDING_MODEL
from answereval.errors import ConfigurationError, EmbeddingError, GenerationError
from answereval.models import ModelConfig

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "anthropic", "google")


class Provider(Protocol):
    """Capability surface every provider adapter exposes."""

    supports_embeddings: bool
    supports_structured_output: bool

    async def generate_text(
        self,
        model_id: str,
        prompt: str,
        *,
        temperature: float,
        top_p: Optional[float] = None,
        top_k: Optional[int] = None,
    ) -> str: ...

    async def generate_object(
        self,
        model_id: str,
        prompt: str,
        schema: Dict[str, Any],
        *,
        temperature: float,
        schema_name: str = "response",
    ) -> Dict[str, Any]: ...

    async def embed(self, model_id: str, text: str) -> List[float]: ...


_PROVIDER_REGISTRY: Dict[str, type] = {}

# Providers whose text API accepts a top-k sampling parameter.
_TOP_K_PROVIDERS = {"anthropic", "google"}


def _ensure_registry() -> None:
    if _PROVIDER_REGISTRY:
        return
    from answereval.providers.anthropic import AnthropicProvider
    from answereval.providers.google import GoogleProvider
    from answereval.providers.openai import OpenAIProvider

    _PROVIDER_REGISTRY.update({
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "google": GoogleProvider,
    })


def parse_model_string(model_string: str) -> ModelConfig:
    """Split ``provider:model-id`` and validate the provider."""
    provider, sep, model_id = model_string.partition(":")
    if not sep:
        raise ConfigurationError(
            f'Invalid model format: "{model_string}". '
            'Expected "provider:model-id" (e.g., "openai:gpt-4o")'
        )
    if not provider or not model_id:
        raise ConfigurationError(
            f'Invalid model format: "{model_string}". Provider and model ID are required.'
        )
    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigurationError(
            f'Unsupported provider: "{provider}". Supported: {", ".join(SUPPORTED_PROVIDERS)}'
        )
    return ModelConfig(provider=provider, model_id=model_id)


def get_api_key(provider: str, environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    env_var = API_KEY_ENV[provider]
    key = env.get(env_var, "")
    if not key:
        raise ConfigurationError(
            f'API key not found for provider "{provider}". Please set {env_var}.'
        )
    return key


def get_provider(provider: str, api_key: Optional[str] = None) -> Provider:
    """Get a provider adapter instance by name."""
    _ensure_registry()
    if provider not in _PROVIDER_REGISTRY:
        raise ConfigurationError(
            f"Unknown provider: {provider!r}. Available: {sorted(_PROVIDER_REGISTRY)}"
        )
    return _PROVIDER_REGISTRY[provider](api_key=api_key or get_api_key(provider))


async def generate_text(
    model: str,
    prompt: str,
    *,
    temperature: float,
    top_p: Optional[float] = None,
    top_k: Optional[int] = None,
) -> str:
    """Generate free text with ``model``.

    Configuration problems raise ConfigurationError; provider failures are
    wrapped in GenerationError.
    """
    config = parse_model_string(model)
    provider = get_provider(config.provider)
    try:
        return await provider.generate_text(
            config.model_id,
            prompt,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k if config.provider in _TOP_K_PROVIDERS else None,
        )
    except Exception as exc:
        logger.error("Generation with %s failed: %s", model, exc)
        raise GenerationError(f"LLM generation failed: {exc}") from exc


async def generate_object(
    model: str,
    prompt: str,
    schema: Dict[str, Any],
    *,
    temperature: float,
    schema_name: str = "response",
) -> Dict[str, Any]:
    """Generate a JSON object constrained to ``schema`` and validate it."""
    config = parse_model_string(model)
    provider = get_provider(config.provider)
    try:
        obj = await provider.generate_object(
            config.model_id, prompt, schema,
            temperature=temperature, schema_name=schema_name,
        )
        jsonschema.validate(obj, schema)
    except Exception as exc:
        raise GenerationError(f"Structured generation failed: {exc}") from exc
    return obj


def supports_structured_output(model: str) -> bool:
    config = parse_model_string(model)
    _ensure_registry()
    return bool(getattr(_PROVIDER_REGISTRY[config.provider], "supports_structured_output", False))


async def generate_embedding(text: str, model: Optional[str] = None) -> List[float]:
    """Embed ``text`` with ``model`` (default: ``EMBEDDING_MODEL`` env or text-embedding-3-small)."""
    model = model or os.environ.get("EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODEL
    config = parse_model_string(model)
    _ensure_registry()
    if not getattr(_PROVIDER_REGISTRY[config.provider], "supports_embeddings", False):
        raise ConfigurationError(
            f"Embedding not supported for provider: {config.provider}. Use openai or google."
        )
    provider = get_provider(config.provider)
    try:
        return await provider.embed(config.model_id, text)
    except Exception as exc:
        logger.error("Embedding with %s failed: %s", model, exc)
        raise EmbeddingError(f"Embedding generation failed: {exc}") from exc

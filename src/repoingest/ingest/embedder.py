"""Embedder — batched LiteLLM embeddings for chunk texts."""

from __future__ import annotations

import os
from dataclasses import dataclass

import litellm
import structlog

log = structlog.get_logger(__name__)

# Provider prefix → env var LiteLLM reads the key from.
_PROVIDER_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


class MissingEmbeddingKeyError(RuntimeError):
    """No API key is configured for the embedding provider."""


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536


class Embedder:
    """Return one embedding vector per input text, in input order.

    Args:
        config: Embedding model and vector width.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    @property
    def config(self) -> EmbeddingConfig:
        return self._config

    def required_key_env(self) -> str | None:
        """Env var holding the provider key, or None for keyless providers."""
        model = self._config.model
        provider = model.split("/")[0].lower() if "/" in model else "openai"
        return _PROVIDER_KEY_ENV.get(provider)

    def check_credentials(self) -> None:
        """Raise MissingEmbeddingKeyError if the provider key env var is unset."""
        required_env = self.required_key_env()
        if required_env and not os.environ.get(required_env):
            provider = self._config.model.split("/")[0] if "/" in self._config.model else "openai"
            raise MissingEmbeddingKeyError(
                f"No API key found for embedding provider '{provider}'. "
                f"Set the {required_env} environment variable."
            )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in a single request.

        Raises:
            MissingEmbeddingKeyError: If no provider key is configured.
            ValueError: If the provider returns a different number of vectors.
        """
        if not texts:
            return []
        self.check_credentials()

        response = await litellm.aembedding(model=self._config.model, input=texts)
        items = list(response.data)
        if len(items) != len(texts):
            raise ValueError(
                f"Embedding provider returned {len(items)} vectors for {len(texts)} inputs"
            )
        if all(item.get("index") is not None for item in items):
            items.sort(key=lambda item: item["index"])

        log.debug("embedded_batch", model=self._config.model, count=len(items))
        return [list(item["embedding"]) for item in items]

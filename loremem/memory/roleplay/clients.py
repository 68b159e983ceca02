"""OpenAI-compatible embedding client used by the in-process memory backend."""

from __future__ import annotations

import logging
import os
from typing import Any, Iterable, List, MutableMapping, Optional

from openai import OpenAI

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = {"vllm", "openai", "ollama"}


class EmbeddingClient:
    """Thin wrapper over :class:`openai.OpenAI` embeddings with provider defaults."""

    def __init__(
        self,
        *,
        base_url: Optional[str],
        model: str,
        provider: str = "vllm",
        api_key: str | None = None,
        api_key_env: str | None = None,
        dimensions: int | None = None,
    ) -> None:
        provider_key = provider.lower()
        if provider_key not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported embedding provider '{provider}'")

        if api_key is None:
            api_key = os.environ.get(api_key_env or "OPENAI_API_KEY") or ""

        self._client = OpenAI(base_url=base_url, api_key=api_key)
        self.model = model
        self.provider = provider_key
        self.dimensions = dimensions

    def embed(self, texts: Iterable[str]) -> List[List[float]]:
        items = list(texts)
        if not items:
            return []

        payload: MutableMapping[str, Any] = {"model": self.model, "input": items}
        if self.dimensions is not None:
            payload["dimensions"] = self.dimensions
        logger.debug("Dispatching embedding request for %s texts", len(items))
        response = self._client.embeddings.create(**payload)
        vectors: List[List[float]] = []
        for entry in response.data:
            vector = getattr(entry, "embedding", None)
            if vector is None:
                continue
            vectors.append([float(x) for x in vector])
        if len(vectors) != len(items):
            logger.warning(
                "Embedding count mismatch: expected %s, received %s", len(items), len(vectors)
            )
        return vectors


__all__ = ["EmbeddingClient"]

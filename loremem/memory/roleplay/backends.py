"""Memory backends: the narrow interface and its two implementations.

The services depend only on :class:`MemoryBackend`. ``HttpMemoryBackend``
speaks to a remote semantic-memory API; ``LocalMemoryBackend`` keeps an
in-process embedding index in SQLite.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol

import httpx

from .database import MemoryDatabase
from .errors import MalformedResponse, MemoryBackendError

logger = logging.getLogger(__name__)

Embedder = Callable[[Iterable[str]], List[List[float]]]

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class MemoryBackend(Protocol):
    """Anything that can append a record to a container and search one."""

    async def write(
        self, *, content: str, container_tag: str, metadata: Mapping[str, Any]
    ) -> str:
        """Persist a record and return the backend-assigned id."""

    async def search(
        self,
        *,
        query: str,
        container_tag: str,
        limit: int,
        predicate: Optional[Mapping[str, Any]] = None,
    ) -> List[Mapping[str, Any]]:
        """Return ``[{memory, metadata?}]`` scoped to exactly ``container_tag``."""


class HttpMemoryBackend:
    """Async client for the remote memory API (``POST memories`` / ``POST search``)."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        api_key_env: str = "MEMORY_API_KEY",
        timeout: float = 10.0,
        retry_attempts: int = 2,
        backoff_seconds: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if api_key is None:
            api_key = os.environ.get(api_key_env) or ""

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.base_url = base_url.rstrip("/")
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_seconds = backoff_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "HttpMemoryBackend":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _backoff(self, attempt: int) -> float:
        return self.backoff_seconds * (2**attempt)

    async def _post(self, path: str, body: Mapping[str, Any]) -> Any:
        """POST ``body`` and return the decoded JSON, retrying transient failures.

        Raises:
            httpx.HTTPStatusError: for non-retryable statuses or exhausted retries.
            httpx.RequestError: when the transport keeps failing.
            MalformedResponse: when the body is not JSON.
        """

        for attempt in range(self.retry_attempts):
            last_attempt = attempt == self.retry_attempts - 1
            try:
                response = await self._client.post(path, json=dict(body))
            except httpx.RequestError as exc:
                if last_attempt:
                    raise
                logger.debug("Retrying %s after transport error: %s", path, exc)
                await asyncio.sleep(self._backoff(attempt))
                continue

            if response.status_code in RETRYABLE_STATUS and not last_attempt:
                logger.debug("Retrying %s after status %s", path, response.status_code)
                await asyncio.sleep(self._backoff(attempt))
                continue

            response.raise_for_status()
            try:
                return response.json()
            except ValueError as exc:
                raise MalformedResponse(f"{path} returned a non-JSON body") from exc

        raise MemoryBackendError(f"Request to {path} made no attempts")

    async def write(
        self, *, content: str, container_tag: str, metadata: Mapping[str, Any]
    ) -> str:
        body = {"content": content, "containerTag": container_tag, "metadata": dict(metadata)}
        logger.debug("Writing memory to %s", container_tag)
        data = await self._post("/memories", body)
        memory_id = data.get("id") if isinstance(data, Mapping) else None
        if not memory_id:
            raise MalformedResponse(f"Write response carries no id: {data!r}")
        return str(memory_id)

    async def search(
        self,
        *,
        query: str,
        container_tag: str,
        limit: int,
        predicate: Optional[Mapping[str, Any]] = None,
    ) -> List[Mapping[str, Any]]:
        body: dict = {"q": query, "containerTag": container_tag, "limit": limit}
        if predicate:
            body["filter"] = dict(predicate)
        logger.debug("Searching %s (limit=%s)", container_tag, limit)
        data = await self._post("/search", body)
        results = data.get("results") if isinstance(data, Mapping) else None
        if not isinstance(results, list):
            raise MalformedResponse(f"Search response carries no results list: {data!r}")
        return results


class LocalMemoryBackend:
    """In-process backend: embeds with ``embed_texts`` and ranks by cosine similarity."""

    def __init__(self, *, db: MemoryDatabase, embed_texts: Embedder) -> None:
        self.db = db
        self.embed_texts = embed_texts

    def _embed(self, text: str) -> List[float]:
        vectors = self.embed_texts([text])
        if not vectors:
            raise MemoryBackendError("Embedding service returned no vector")
        return vectors[0]

    def _write_sync(self, content: str, container_tag: str, metadata: Mapping[str, Any]) -> str:
        return self.db.add_memory(
            container_tag=container_tag,
            content=content,
            embedding=self._embed(content),
            metadata=metadata,
        )

    def _search_sync(
        self,
        query: str,
        container_tag: str,
        limit: int,
        predicate: Optional[Mapping[str, Any]],
    ) -> List[Mapping[str, Any]]:
        results = self.db.search(
            container_tag=container_tag,
            embedding=self._embed(query),
            top_k=limit,
            predicate=predicate,
        )
        return [result.to_payload() for result in results]

    async def write(
        self, *, content: str, container_tag: str, metadata: Mapping[str, Any]
    ) -> str:
        return await asyncio.to_thread(self._write_sync, content, container_tag, metadata)

    async def search(
        self,
        *,
        query: str,
        container_tag: str,
        limit: int,
        predicate: Optional[Mapping[str, Any]] = None,
    ) -> List[Mapping[str, Any]]:
        return await asyncio.to_thread(self._search_sync, query, container_tag, limit, predicate)


__all__ = ["Embedder", "HttpMemoryBackend", "LocalMemoryBackend", "MemoryBackend"]

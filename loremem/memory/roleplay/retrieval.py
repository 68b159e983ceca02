"""Recall queries against a single character or world container."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from .backends import MemoryBackend
from .boundary import ErrorBoundary, Observer, notify
from .containers import validate_character_container, validate_world_container
from .errors import InvalidLimit, MemoryValidationError
from .formatting import format_character_query, format_world_query
from .schemas import (
    BACKEND_UNAVAILABLE,
    MEMORY_RECALL,
    WORLD_MEMORY_RETRIEVAL,
    GameTime,
    MemoryEvent,
    QueryResult,
    RecentMessage,
)

logger = logging.getLogger(__name__)

DEFAULT_CHARACTER_LIMIT = 5
DEFAULT_WORLD_LIMIT = 10


def _validate_limit(limit: object) -> int:
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
        raise InvalidLimit(limit)
    return limit


def normalize_results(
    results: Sequence[Any], *, limit: int, include_metadata: bool
) -> QueryResult:
    """Turn raw backend results into a capped :class:`QueryResult`."""

    memories: List[str] = []
    metadata: List[Mapping[str, Any]] = []
    for item in results:
        if len(memories) >= limit:
            break
        if isinstance(item, str):
            memories.append(item)
            metadata.append({})
            continue
        if not isinstance(item, Mapping):
            logger.warning("Skipping malformed search result: %r", item)
            continue
        text = item.get("memory") or item.get("content") or ""
        memories.append(str(text))
        item_metadata = item.get("metadata")
        metadata.append(dict(item_metadata) if isinstance(item_metadata, Mapping) else {})
    return QueryResult(memories=memories, metadata=metadata if include_metadata else None)


@dataclass
class MemoryRetrievalService:
    """Read-only recall, always scoped to the one container tag given.

    Queries never raise: invalid input and backend failures both resolve to
    an empty :class:`QueryResult` whose ``reason`` tells them apart.
    """

    backend: MemoryBackend
    boundary: ErrorBoundary = field(default_factory=ErrorBoundary)
    observer: Optional[Observer] = None

    async def query_character_memories(
        self,
        container_tag: str,
        *,
        game_time: GameTime,
        interval: str,
        recent_messages: Sequence[RecentMessage],
        speaker_name: str,
        limit: int = DEFAULT_CHARACTER_LIMIT,
        include_metadata: bool = False,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> QueryResult:
        try:
            validate_character_container(container_tag)
            _validate_limit(limit)
        except MemoryValidationError as exc:
            logger.error("Rejected character memory query: %s", exc)
            return QueryResult.empty(include_metadata=include_metadata, reason=exc.reason)

        query = format_character_query(game_time, interval, recent_messages, speaker_name)
        result = await self._search(
            "query_character_memories",
            query=query,
            container_tag=container_tag,
            limit=limit,
            include_metadata=include_metadata,
            filters=filters,
        )
        logger.info("Recalled %s memories from %s", result.count, container_tag)
        self._emit(MEMORY_RECALL, container_tag, query, result)
        return result

    async def query_world_memories(
        self,
        container_tag: str,
        *,
        game_time: GameTime,
        interval: str,
        limit: int = DEFAULT_WORLD_LIMIT,
        include_metadata: bool = False,
        query: Optional[str] = None,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> QueryResult:
        try:
            validate_world_container(container_tag)
            _validate_limit(limit)
        except MemoryValidationError as exc:
            logger.error("Rejected world memory query: %s", exc)
            return QueryResult.empty(include_metadata=include_metadata, reason=exc.reason)

        text = format_world_query(game_time, interval, query)
        result = await self._search(
            "query_world_memories",
            query=text,
            container_tag=container_tag,
            limit=limit,
            include_metadata=include_metadata,
            filters=filters,
        )
        logger.info("Retrieved %s world memories from %s", result.count, container_tag)
        self._emit(WORLD_MEMORY_RETRIEVAL, container_tag, text, result)
        return result

    async def _search(
        self,
        operation: str,
        *,
        query: str,
        container_tag: str,
        limit: int,
        include_metadata: bool,
        filters: Optional[Mapping[str, Any]],
    ) -> QueryResult:
        async def _call() -> QueryResult:
            results = await self.backend.search(
                query=query, container_tag=container_tag, limit=limit, predicate=filters
            )
            return normalize_results(results, limit=limit, include_metadata=include_metadata)

        return await self.boundary.call(
            operation,
            _call,
            QueryResult.empty(include_metadata=include_metadata, reason=BACKEND_UNAVAILABLE),
        )

    def _emit(self, kind: str, container_tag: str, query: str, result: QueryResult) -> None:
        notify(
            self.observer,
            MemoryEvent(
                kind=kind,
                container_tag=container_tag,
                payload={"query": query, **result.to_payload()},
            ),
        )


__all__ = [
    "DEFAULT_CHARACTER_LIMIT",
    "DEFAULT_WORLD_LIMIT",
    "MemoryRetrievalService",
    "normalize_results",
]

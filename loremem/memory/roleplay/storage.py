"""Write formatted records into character and world containers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

from .backends import MemoryBackend
from .boundary import ErrorBoundary, Observer, notify
from .containers import validate_character_container, validate_world_container
from .errors import MemoryValidationError, UnknownMemoryType
from .formatting import format_enriched_character_message, format_world_state_update
from .metadata import build_metadata
from .schemas import (
    BACKEND_UNAVAILABLE,
    CHARACTER_MEMORY_ADD,
    LOREBOOK,
    MESSAGE,
    PERMANENT_TYPES,
    WORLD_MEMORY_ADD,
    WORLD_STATE_UPDATE,
    GameTime,
    MemoryEvent,
    MemoryMetadata,
    MemoryRecord,
    StorageResult,
)

logger = logging.getLogger(__name__)


@dataclass
class MemoryStorageService:
    """Store records through the backend, one call per container.

    Every public method returns a :class:`StorageResult` and never raises.
    Bad input is rejected before any backend call with the violated rule as
    ``reason``; backend failures come back as ``backend_unavailable``.
    """

    backend: MemoryBackend
    boundary: ErrorBoundary = field(default_factory=ErrorBoundary)
    observer: Optional[Observer] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def store_world_message(
        self,
        container_tag: str,
        content: str,
        metadata: Union[MemoryMetadata, Mapping[str, Any]],
    ) -> StorageResult:
        """Store an already formatted world-message line in the world container."""

        try:
            validate_world_container(container_tag)
            fields = dict(metadata.to_payload() if isinstance(metadata, MemoryMetadata) else metadata)
            for key in ("isSpeaker", "is_speaker"):
                fields.pop(key, None)
            built = build_metadata(MESSAGE, fields)
        except MemoryValidationError as exc:
            return self._rejected("store_world_message", exc)
        return await self._write(
            "store_world_message", container_tag, content, built, WORLD_MEMORY_ADD
        )

    async def store_character_message(
        self,
        container_tag: str,
        *,
        game_time: GameTime,
        interval: str,
        speaker_name: str,
        content: str,
        participants: Sequence[str],
        is_speaker: Optional[bool],
        speaker: Optional[str] = None,
        world_knowledge: Optional[str] = None,
    ) -> StorageResult:
        """Store the enriched, sectioned form of a message in a character container."""

        try:
            validate_character_container(container_tag)
            built = build_metadata(
                MESSAGE,
                {
                    "speaker": speaker if speaker is not None else speaker_name,
                    "participants": list(participants),
                    "gameTime": game_time,
                    "gameTimeInterval": interval,
                    "isSpeaker": is_speaker,
                },
                character_container=True,
            )
        except MemoryValidationError as exc:
            return self._rejected("store_character_message", exc)

        enriched = format_enriched_character_message(
            game_time, interval, speaker_name, content, world_knowledge
        )
        return await self._write(
            "store_character_message", container_tag, enriched, built, CHARACTER_MEMORY_ADD
        )

    async def store_initialization_content(
        self,
        container_tag: str,
        memory_type: str,
        content: str,
        *,
        lorebook_key: Optional[str] = None,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> StorageResult:
        """Seed a character container with permanent scenario, card or lore content."""

        try:
            validate_character_container(container_tag)
            if memory_type not in PERMANENT_TYPES:
                raise UnknownMemoryType(memory_type)
            values = dict(fields or {})
            if memory_type == LOREBOOK and lorebook_key is not None:
                values["lorebookKey"] = lorebook_key
            values["permanent"] = True
            built = build_metadata(memory_type, values)
        except MemoryValidationError as exc:
            return self._rejected("store_initialization_content", exc)
        return await self._write(
            "store_initialization_content", container_tag, content, built, CHARACTER_MEMORY_ADD
        )

    async def store_world_state_update(
        self,
        container_tag: str,
        description: str,
        game_time: GameTime,
        interval: str,
    ) -> StorageResult:
        try:
            validate_world_container(container_tag)
            built = build_metadata(
                WORLD_STATE_UPDATE, {"gameTime": game_time, "gameTimeInterval": interval}
            )
        except MemoryValidationError as exc:
            return self._rejected("store_world_state_update", exc)

        content = format_world_state_update(description, game_time, interval)
        return await self._write(
            "store_world_state_update", container_tag, content, built, WORLD_MEMORY_ADD
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _rejected(self, operation: str, exc: MemoryValidationError) -> StorageResult:
        logger.error("Rejected %s: %s", operation, exc)
        return StorageResult.failed(exc.reason, str(exc))

    async def _write(
        self,
        operation: str,
        container_tag: str,
        content: str,
        metadata: MemoryMetadata,
        event_kind: str,
    ) -> StorageResult:
        record = MemoryRecord(content=content, container_tag=container_tag, metadata=metadata)
        body = record.to_payload()
        payload = body["metadata"]

        async def _call() -> StorageResult:
            memory_id = await self.backend.write(
                content=body["content"], container_tag=body["containerTag"], metadata=payload
            )
            record.id = memory_id
            return StorageResult(success=True, id=memory_id)

        result = await self.boundary.call(
            operation,
            _call,
            StorageResult.failed(BACKEND_UNAVAILABLE, "memory backend unavailable"),
        )
        if result.success:
            logger.info("Stored %s memory %s in %s", metadata.type, result.id, container_tag)
            notify(
                self.observer,
                MemoryEvent(
                    kind=event_kind,
                    container_tag=container_tag,
                    payload={"content": content, "metadata": payload, "storage_id": result.id},
                ),
            )
        return result


__all__ = ["MemoryStorageService"]

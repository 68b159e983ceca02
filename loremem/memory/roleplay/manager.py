"""Session-level orchestration on top of the storage and retrieval services."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Sequence

from .backends import MemoryBackend
from .boundary import ErrorBoundary, Observer, notify
from .containers import create_character_container, create_world_container
from .errors import InvalidContainerTag
from .formatting import append_character_context, format_memories_for_prompt, format_world_message
from .metadata import is_speaker_for
from .retrieval import DEFAULT_CHARACTER_LIMIT, DEFAULT_WORLD_LIMIT, MemoryRetrievalService
from .schemas import (
    CHARACTER_CARD,
    LOREBOOK,
    MEMORY_DISTRIBUTION,
    SCENARIO,
    SESSION_INIT,
    CharacterInit,
    GameTime,
    MemoryEvent,
    QueryResult,
    RecentMessage,
    StorageResult,
)
from .storage import MemoryStorageService

logger = logging.getLogger(__name__)

INITIAL_GAME_TIME = 0
INITIAL_INTERVAL = "Day"


@dataclass
class TurnDistribution:
    """Results of fanning one turn out to the world and participant containers."""

    world: StorageResult
    characters: Dict[str, StorageResult] = field(default_factory=dict)

    @property
    def stored_ids(self) -> List[str]:
        results = [self.world, *self.characters.values()]
        return [result.id for result in results if result.id]

    @property
    def failures(self) -> List[str]:
        failed = [pid for pid, result in self.characters.items() if not result.success]
        if not self.world.success:
            failed.insert(0, "world")
        return failed

    def to_payload(self) -> Mapping[str, Any]:
        return {
            "world": dict(self.world.to_payload()),
            "characters": {pid: dict(result.to_payload()) for pid, result in self.characters.items()},
        }


async def _rejected(exc: InvalidContainerTag) -> StorageResult:
    logger.error("Skipping container: %s", exc)
    return StorageResult.failed(exc.reason, str(exc))


@dataclass
class RoleplayMemoryManager:
    """Hooks the session engine calls at session start, after a turn, and before generation."""

    storage: MemoryStorageService
    retrieval: MemoryRetrievalService
    observer: Optional[Observer] = None
    character_limit: int = DEFAULT_CHARACTER_LIMIT
    world_limit: int = DEFAULT_WORLD_LIMIT

    @classmethod
    def from_backend(
        cls,
        backend: MemoryBackend,
        *,
        boundary: Optional[ErrorBoundary] = None,
        observer: Optional[Observer] = None,
        **options: Any,
    ) -> "RoleplayMemoryManager":
        boundary = boundary or ErrorBoundary()
        return cls(
            storage=MemoryStorageService(backend=backend, boundary=boundary, observer=observer),
            retrieval=MemoryRetrievalService(backend=backend, boundary=boundary, observer=observer),
            observer=observer,
            **options,
        )

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------
    async def initialize_session(
        self,
        session_id: str,
        characters: Sequence[CharacterInit],
        scenario_messages: Sequence[str] = (),
    ) -> Dict[str, List[StorageResult]]:
        """Seed every character container with permanent initialization content."""

        participants = [character.character_id for character in characters]
        pending: Dict[str, List[Awaitable[StorageResult]]] = {}

        for character in characters:
            try:
                tag = create_character_container(session_id, character.character_id)
            except InvalidContainerTag as exc:
                pending[character.character_id] = [_rejected(exc)]
                continue

            base = {
                "speaker": character.character_id,
                "participants": participants,
                "gameTime": INITIAL_GAME_TIME,
                "gameTimeInterval": INITIAL_INTERVAL,
            }
            calls: List[Awaitable[StorageResult]] = [
                self.storage.store_initialization_content(tag, SCENARIO, text, fields=base)
                for text in scenario_messages
                if text.strip()
            ]
            if character.character_card:
                calls.append(
                    self.storage.store_initialization_content(
                        tag, CHARACTER_CARD, character.character_card, fields=base
                    )
                )
            for entry in character.lorebook:
                calls.append(
                    self.storage.store_initialization_content(
                        tag, LOREBOOK, entry.content, lorebook_key=entry.key, fields=base
                    )
                )
            pending[character.character_id] = calls

        flat = [(character_id, call) for character_id, calls in pending.items() for call in calls]
        outcomes = await asyncio.gather(*(call for _, call in flat))
        results: Dict[str, List[StorageResult]] = {character_id: [] for character_id in pending}
        for (character_id, _), outcome in zip(flat, outcomes):
            results[character_id].append(outcome)

        stored = sum(1 for items in results.values() for result in items if result.success)
        logger.info("Initialized %s character containers for session %s", len(results), session_id)
        notify(
            self.observer,
            MemoryEvent(
                kind=SESSION_INIT,
                container_tag=None,
                payload={"session_id": session_id, "characters": participants, "stored": stored},
            ),
        )
        return results

    # ------------------------------------------------------------------
    # After a turn
    # ------------------------------------------------------------------
    async def distribute_turn(
        self,
        session_id: str,
        *,
        speaker_id: str,
        speaker_name: str,
        message: str,
        game_time: GameTime,
        interval: str,
        participant_ids: Sequence[str],
        world_knowledge: Optional[Mapping[str, str]] = None,
    ) -> TurnDistribution:
        """Write one world record and one enriched record per participant.

        The speaker always counts as a participant and duplicate ids are
        written once.

        All writes run concurrently and independently; one failing write
        leaves the others untouched.
        """

        knowledge = world_knowledge or {}
        participants = list(dict.fromkeys([*participant_ids, speaker_id]))
        world_content = format_world_message(speaker_name, message, game_time, interval)

        try:
            world_tag = create_world_container(session_id)
        except InvalidContainerTag as exc:
            world_call = _rejected(exc)
        else:
            world_call = self.storage.store_world_message(
                world_tag,
                world_content,
                {
                    "speaker": speaker_id,
                    "participants": participants,
                    "gameTime": game_time,
                    "gameTimeInterval": interval,
                },
            )

        character_calls: List[Awaitable[StorageResult]] = []
        for participant_id in participants:
            try:
                tag = create_character_container(session_id, participant_id)
            except InvalidContainerTag as exc:
                character_calls.append(_rejected(exc))
                continue
            character_calls.append(
                self.storage.store_character_message(
                    tag,
                    game_time=game_time,
                    interval=interval,
                    speaker_name=speaker_name,
                    content=message,
                    speaker=speaker_id,
                    participants=participants,
                    is_speaker=is_speaker_for(participant_id, speaker_id),
                    world_knowledge=knowledge.get(participant_id),
                )
            )

        world_result, *character_results = await asyncio.gather(world_call, *character_calls)
        distribution = TurnDistribution(
            world=world_result,
            characters=dict(zip(participants, character_results)),
        )
        if distribution.failures:
            logger.warning(
                "Turn from %s stored with failures in: %s",
                speaker_name,
                ", ".join(distribution.failures),
            )
        notify(
            self.observer,
            MemoryEvent(
                kind=MEMORY_DISTRIBUTION,
                container_tag=None,
                payload={"session_id": session_id, "speaker": speaker_id, **distribution.to_payload()},
            ),
        )
        return distribution

    # ------------------------------------------------------------------
    # Before generation
    # ------------------------------------------------------------------
    async def recall_for_character(
        self,
        session_id: str,
        character_id: str,
        character_name: str,
        *,
        game_time: GameTime,
        interval: str,
        recent_messages: Sequence[RecentMessage],
        limit: Optional[int] = None,
        character_context: Optional[str] = None,
        include_metadata: bool = False,
    ) -> str:
        """Return prompt-ready recalled memories, or an empty string."""

        try:
            tag = create_character_container(session_id, character_id)
        except InvalidContainerTag as exc:
            logger.error("Cannot recall for %s: %s", character_name, exc)
            return append_character_context("", character_name, character_context)

        result = await self.retrieval.query_character_memories(
            tag,
            game_time=game_time,
            interval=interval,
            recent_messages=recent_messages,
            speaker_name=character_name,
            limit=self.character_limit if limit is None else limit,
            include_metadata=include_metadata,
        )
        formatted = format_memories_for_prompt(result.memories, result.metadata)
        return append_character_context(formatted, character_name, character_context)

    async def recall_world_context(
        self,
        session_id: str,
        *,
        game_time: GameTime,
        interval: str,
        query: Optional[str] = None,
        limit: Optional[int] = None,
        include_metadata: bool = False,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> QueryResult:
        try:
            tag = create_world_container(session_id)
        except InvalidContainerTag as exc:
            logger.error("Cannot recall world context: %s", exc)
            return QueryResult.empty(include_metadata=include_metadata, reason=exc.reason)
        return await self.retrieval.query_world_memories(
            tag,
            game_time=game_time,
            interval=interval,
            limit=self.world_limit if limit is None else limit,
            include_metadata=include_metadata,
            query=query,
            filters=filters,
        )


__all__ = ["INITIAL_GAME_TIME", "INITIAL_INTERVAL", "RoleplayMemoryManager", "TurnDistribution"]

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

import httpx

from loremem.memory.roleplay.boundary import CallState, ErrorBoundary
from loremem.memory.roleplay.filters import build_filter, matches_filter
from loremem.memory.roleplay.retrieval import MemoryRetrievalService
from loremem.memory.roleplay.schemas import MemoryEvent, MemoryMetadata, RecentMessage
from loremem.memory.roleplay.storage import MemoryStorageService


class FakeMemoryBackend:
    def __init__(self) -> None:
        self.records: Dict[str, List[Dict[str, Any]]] = {}
        self.writes: List[Dict[str, Any]] = []
        self.searches: List[Dict[str, Any]] = []

    async def write(self, *, content: str, container_tag: str, metadata: Mapping[str, Any]) -> str:
        memory_id = f"mem-{len(self.writes) + 1}"
        self.writes.append({"content": content, "container_tag": container_tag, "metadata": dict(metadata)})
        self.records.setdefault(container_tag, []).append(
            {"id": memory_id, "memory": content, "metadata": dict(metadata)}
        )
        return memory_id

    async def search(
        self,
        *,
        query: str,
        container_tag: str,
        limit: int,
        predicate: Optional[Mapping[str, Any]] = None,
    ) -> List[Mapping[str, Any]]:
        self.searches.append(
            {"query": query, "container_tag": container_tag, "limit": limit, "predicate": predicate}
        )
        return [
            record
            for record in self.records.get(container_tag, [])
            if matches_filter(record["metadata"], predicate)
        ]


class UnreachableBackend:
    def __init__(self) -> None:
        self.calls = 0

    async def write(self, **_: Any) -> str:
        self.calls += 1
        raise httpx.ConnectError("connection refused")

    async def search(self, **_: Any) -> List[Mapping[str, Any]]:
        self.calls += 1
        raise httpx.ReadTimeout("timed out")


def _services(backend: Any, **kwargs: Any) -> tuple[MemoryStorageService, MemoryRetrievalService]:
    boundary = kwargs.pop("boundary", ErrorBoundary())
    storage = MemoryStorageService(backend=backend, boundary=boundary, **kwargs)
    retrieval = MemoryRetrievalService(backend=backend, boundary=boundary, **kwargs)
    return storage, retrieval


def _store_turn(storage: MemoryStorageService, tag: str, content: str, *, game_time: int = 1, speaker: bool = True):
    return storage.store_character_message(
        tag,
        game_time=game_time,
        interval="Day",
        speaker_name="Alice",
        content=content,
        speaker="alice",
        participants=["alice", "bob"],
        is_speaker=speaker,
    )


def test_world_message_is_stored_with_message_metadata() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)

    result = asyncio.run(
        storage.store_world_message(
            "s1-world",
            "Message: Alice: Hi GameTime: 1 Day",
            {"speaker": "alice", "participants": ["alice"], "gameTime": 1, "gameTimeInterval": "Day"},
        )
    )

    assert result.success is True
    assert result.id == "mem-1"
    assert backend.writes[0]["metadata"]["type"] == "message"
    assert backend.writes[0]["container_tag"] == "s1-world"


def test_world_message_accepts_typed_metadata() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)
    metadata = MemoryMetadata(
        type="message", speaker="alice", participants=["alice"], game_time=2, game_time_interval="Day"
    )

    result = asyncio.run(storage.store_world_message("s1-world", "text", metadata))

    assert result.success is True
    assert backend.writes[0]["metadata"]["gameTime"] == 2


def test_wrong_container_kind_is_rejected_before_backend_call() -> None:
    backend = FakeMemoryBackend()
    storage, retrieval = _services(backend)

    world_in_character = asyncio.run(_store_turn(storage, "s1-world", "Hi"))
    character_in_world = asyncio.run(
        storage.store_world_message(
            "s1-alice",
            "text",
            {"speaker": "alice", "participants": ["alice"], "gameTime": 1, "gameTimeInterval": "Day"},
        )
    )
    query = asyncio.run(
        retrieval.query_character_memories(
            "s1-world", game_time=1, interval="Day", recent_messages=[], speaker_name="Alice"
        )
    )

    assert world_in_character.to_payload() == {
        "success": False,
        "id": None,
        "error": world_in_character.error,
        "reason": "invalid_container_tag",
    }
    assert character_in_world.reason == "invalid_container_tag"
    assert query.memories == [] and query.reason == "invalid_container_tag"
    assert backend.writes == [] and backend.searches == []


def test_character_message_without_is_speaker_is_rejected() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)

    result = asyncio.run(_store_turn(storage, "s1-alice", "Hi", speaker=None))  # type: ignore[arg-type]

    assert result.success is False
    assert result.reason == "missing_required_field"
    assert backend.writes == []


def test_character_message_is_stored_enriched() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)

    asyncio.run(
        storage.store_character_message(
            "s1-bob",
            game_time=3,
            interval="Day",
            speaker_name="Alice",
            content="The gate is open",
            speaker="alice",
            participants=["alice", "bob"],
            is_speaker=False,
            world_knowledge="Bob learned the gate code",
        )
    )

    stored = backend.writes[0]
    assert stored["content"].startswith("###Current time###\nGameTime: 3 Day")
    assert "###Newly discovered world knowledge###\nBob learned the gate code" in stored["content"]
    assert stored["metadata"]["isSpeaker"] is False
    assert stored["metadata"]["speaker"] == "alice"


def test_lorebook_initialization_requires_key() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)

    missing = asyncio.run(storage.store_initialization_content("s1-alice", "lorebook", "Excalibur"))
    stored = asyncio.run(
        storage.store_initialization_content("s1-alice", "lorebook", "Excalibur", lorebook_key="k1")
    )

    assert missing.success is False
    assert missing.reason == "missing_required_field"
    assert stored.success is True
    assert backend.writes[0]["metadata"] == {"type": "lorebook", "permanent": True, "lorebookKey": "k1"}


def test_initialization_rejects_non_permanent_types() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)

    result = asyncio.run(storage.store_initialization_content("s1-alice", "message", "Hi"))

    assert result.reason == "unknown_memory_type"
    assert backend.writes == []


def test_world_state_update_is_stored_in_world_container() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)

    result = asyncio.run(storage.store_world_state_update("s1-world", "The bridge collapsed", 12, "Day"))
    rejected = asyncio.run(storage.store_world_state_update("s1-alice", "The bridge collapsed", 12, "Day"))

    assert result.success is True
    assert backend.writes[0]["content"] == "The bridge collapsed. GameTime: 12 Day"
    assert backend.writes[0]["metadata"]["type"] == "world_state_update"
    assert rejected.reason == "invalid_container_tag"


def test_queries_only_see_their_own_container() -> None:
    backend = FakeMemoryBackend()
    storage, retrieval = _services(backend)

    asyncio.run(_store_turn(storage, "s1-alice", "Alice remembers the sword"))
    asyncio.run(_store_turn(storage, "s1-bob", "Bob remembers the dragon", speaker=False))

    result = asyncio.run(
        retrieval.query_character_memories(
            "s1-alice",
            game_time=2,
            interval="Day",
            recent_messages=[RecentMessage(name="Bob", content="Where is it?")],
            speaker_name="Alice",
        )
    )

    assert result.count == 1
    assert "Alice remembers the sword" in result.memories[0]
    assert all("dragon" not in memory for memory in result.memories)
    assert backend.searches[0]["container_tag"] == "s1-alice"
    assert backend.searches[0]["limit"] == 5
    assert backend.searches[0]["query"].endswith("to construct Alice's next message?")


def test_query_caps_results_at_limit() -> None:
    backend = FakeMemoryBackend()
    storage, retrieval = _services(backend)
    for idx in range(5):
        asyncio.run(_store_turn(storage, "s1-alice", f"memory {idx}", game_time=idx))

    result = asyncio.run(
        retrieval.query_character_memories(
            "s1-alice",
            game_time=5,
            interval="Day",
            recent_messages=[],
            speaker_name="Alice",
            limit=3,
            include_metadata=True,
        )
    )

    assert result.count == 3
    assert len(result.memories) == 3
    assert result.metadata is not None and len(result.metadata) == 3
    assert result.metadata[0]["gameTime"] == 0


def test_world_query_passes_filters_through() -> None:
    backend = FakeMemoryBackend()
    storage, retrieval = _services(backend)
    asyncio.run(storage.store_world_state_update("s1-world", "Night fell", 3, "Day"))
    asyncio.run(storage.store_world_state_update("s1-world", "Dawn broke", 8, "Day"))
    predicate = build_filter(game_time_gte=5)

    result = asyncio.run(
        retrieval.query_world_memories("s1-world", game_time=9, interval="Day", filters=predicate)
    )

    assert result.memories == ["Dawn broke. GameTime: 8 Day"]
    assert result.metadata is None
    assert backend.searches[0]["predicate"] == predicate
    assert backend.searches[0]["limit"] == 10


def test_invalid_limit_is_rejected() -> None:
    backend = FakeMemoryBackend()
    _, retrieval = _services(backend)

    result = asyncio.run(
        retrieval.query_world_memories("s1-world", game_time=1, interval="Day", limit=0, include_metadata=True)
    )

    assert result.reason == "invalid_limit"
    assert result.metadata == []
    assert backend.searches == []


def test_unreachable_backend_degrades_to_failed_results() -> None:
    backend = UnreachableBackend()
    boundary = ErrorBoundary()
    storage, retrieval = _services(backend, boundary=boundary)

    stored = asyncio.run(_store_turn(storage, "s1-alice", "Hi"))
    queried = asyncio.run(
        retrieval.query_character_memories(
            "s1-alice", game_time=1, interval="Day", recent_messages=[], speaker_name="Alice"
        )
    )

    assert stored.success is False
    assert stored.id is None
    assert stored.reason == "backend_unavailable"
    assert queried.memories == []
    assert queried.count == 0
    assert queried.reason == "backend_unavailable"
    assert boundary.state("store_character_message") is CallState.FAILED
    assert boundary.state("query_character_memories") is CallState.FAILED
    assert backend.calls == 2


def test_offline_boundary_skips_backend() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend, boundary=ErrorBoundary(is_online=lambda: False))

    result = asyncio.run(_store_turn(storage, "s1-alice", "Hi"))

    assert result.reason == "backend_unavailable"
    assert backend.writes == []


def test_boundary_tracks_call_state() -> None:
    backend = FakeMemoryBackend()
    boundary = ErrorBoundary()
    storage, _ = _services(backend, boundary=boundary)

    assert boundary.state("store_character_message") is CallState.IDLE
    asyncio.run(_store_turn(storage, "s1-alice", "Hi"))
    assert boundary.state("store_character_message") is CallState.SUCCESS


def test_observer_receives_debug_events() -> None:
    backend = FakeMemoryBackend()
    events: List[MemoryEvent] = []
    storage, retrieval = _services(backend, observer=events.append)

    asyncio.run(_store_turn(storage, "s1-alice", "Hi"))
    asyncio.run(storage.store_world_state_update("s1-world", "Rain", 1, "Day"))
    asyncio.run(
        retrieval.query_character_memories(
            "s1-alice", game_time=1, interval="Day", recent_messages=[], speaker_name="Alice"
        )
    )
    asyncio.run(retrieval.query_world_memories("s1-world", game_time=1, interval="Day"))

    assert [event.kind for event in events] == [
        "character_memory_add",
        "world_memory_add",
        "memory_recall",
        "world_memory_retrieval",
    ]
    assert events[0].payload["storage_id"] == "mem-1"
    assert events[2].payload["count"] == 1


def test_observer_errors_do_not_break_storage() -> None:
    def broken_observer(event: MemoryEvent) -> None:
        raise RuntimeError("observer exploded")

    backend = FakeMemoryBackend()
    storage, _ = _services(backend, observer=broken_observer)

    result = asyncio.run(_store_turn(storage, "s1-alice", "Hi"))

    assert result.success is True
    assert len(backend.writes) == 1


def test_world_message_drops_speaker_flag() -> None:
    backend = FakeMemoryBackend()
    storage, _ = _services(backend)

    result = asyncio.run(
        storage.store_world_message(
            "s1-world",
            "Message: Alice: Hi GameTime: 1 Day",
            {
                "speaker": "alice",
                "participants": ["alice"],
                "gameTime": 1,
                "gameTimeInterval": "Day",
                "isSpeaker": True,
            },
        )
    )

    assert result.success is True
    assert "isSpeaker" not in backend.writes[0]["metadata"]

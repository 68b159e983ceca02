"""Typed data structures used by the roleplay memory layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Union

GameTime = Union[int, float]

MESSAGE = "message"
LOREBOOK = "lorebook"
CHARACTER_CARD = "character_card"
SCENARIO = "scenario"
WORLD_STATE_UPDATE = "world_state_update"

MEMORY_TYPES = frozenset({MESSAGE, LOREBOOK, CHARACTER_CARD, SCENARIO, WORLD_STATE_UPDATE})
PERMANENT_TYPES = frozenset({SCENARIO, CHARACTER_CARD, LOREBOOK})

# Failure reasons carried by results.
INVALID_CONTAINER_TAG = "invalid_container_tag"
MISSING_REQUIRED_FIELD = "missing_required_field"
UNKNOWN_MEMORY_TYPE = "unknown_memory_type"
INVALID_LIMIT = "invalid_limit"
BACKEND_UNAVAILABLE = "backend_unavailable"

# Debug event kinds delivered to observers.
SESSION_INIT = "session_init"
CHARACTER_MEMORY_ADD = "character_memory_add"
WORLD_MEMORY_ADD = "world_memory_add"
MEMORY_RECALL = "memory_recall"
WORLD_MEMORY_RETRIEVAL = "world_memory_retrieval"
MEMORY_DISTRIBUTION = "memory_distribution"


def _default_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class MemoryMetadata:
    """Structured side-channel data attached to a stored record.

    Never used for ranking; used for exact filtering. Serialised with the
    camelCase keys of the backend wire format.
    """

    type: str
    speaker: Optional[str] = None
    participants: List[str] = field(default_factory=list)
    game_time: Optional[GameTime] = None
    game_time_interval: Optional[str] = None
    is_speaker: Optional[bool] = None
    permanent: Optional[bool] = None
    lorebook_key: Optional[str] = None

    def to_payload(self) -> Mapping[str, Any]:
        payload: Dict[str, Any] = {"type": self.type}
        if self.speaker is not None:
            payload["speaker"] = self.speaker
        if self.participants:
            payload["participants"] = list(self.participants)
        if self.game_time is not None:
            payload["gameTime"] = self.game_time
        if self.game_time_interval is not None:
            payload["gameTimeInterval"] = self.game_time_interval
        if self.is_speaker is not None:
            payload["isSpeaker"] = self.is_speaker
        if self.permanent is not None:
            payload["permanent"] = self.permanent
        if self.lorebook_key is not None:
            payload["lorebookKey"] = self.lorebook_key
        return payload

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "MemoryMetadata":
        participants = data.get("participants") or []
        return cls(
            type=str(data.get("type") or ""),
            speaker=data.get("speaker"),
            participants=[str(item) for item in participants],
            game_time=data.get("gameTime"),
            game_time_interval=data.get("gameTimeInterval"),
            is_speaker=data.get("isSpeaker"),
            permanent=data.get("permanent"),
            lorebook_key=data.get("lorebookKey"),
        )


@dataclass
class MemoryRecord:
    """The unit written to and read from the backend."""

    content: str
    container_tag: str
    metadata: MemoryMetadata
    id: Optional[str] = None

    def to_payload(self) -> Mapping[str, Any]:
        return {
            "content": self.content,
            "containerTag": self.container_tag,
            "metadata": dict(self.metadata.to_payload()),
        }


@dataclass
class StorageResult:
    """Outcome of a write. ``id`` is ``None`` whenever ``success`` is false."""

    success: bool
    id: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str, error: str) -> "StorageResult":
        return cls(success=False, id=None, error=error, reason=reason)

    def to_payload(self) -> Mapping[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "id": self.id}
        if self.error:
            payload["error"] = self.error
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass
class QueryResult:
    """Normalised answer of a recall query."""

    memories: List[str] = field(default_factory=list)
    metadata: Optional[List[Mapping[str, Any]]] = None
    reason: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.memories)

    @classmethod
    def empty(cls, *, include_metadata: bool = False, reason: Optional[str] = None) -> "QueryResult":
        return cls(memories=[], metadata=[] if include_metadata else None, reason=reason)

    def to_payload(self) -> Mapping[str, Any]:
        payload: Dict[str, Any] = {"memories": list(self.memories), "count": self.count}
        if self.metadata is not None:
            payload["metadata"] = [dict(item) for item in self.metadata]
        return payload


@dataclass
class RecentMessage:
    """A recent conversation message used as recall context."""

    name: str
    content: str
    game_time: Optional[GameTime] = None


@dataclass
class LorebookEntry:
    key: str
    content: str


@dataclass
class CharacterInit:
    """Initialization content for one character container."""

    character_id: str
    character_name: str
    character_card: Optional[str] = None
    lorebook: List[LorebookEntry] = field(default_factory=list)


@dataclass
class MemoryEvent:
    """Debug event handed to an optional observer callback."""

    kind: str
    container_tag: Optional[str]
    payload: MutableMapping[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_default_timestamp)

    def to_payload(self) -> Mapping[str, Any]:
        return {
            "kind": self.kind,
            "container_tag": self.container_tag,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
        }


def dumps_payload(data: Mapping[str, Any]) -> str:
    """Render ``data`` as formatted JSON for logs and CLI output."""

    return json.dumps(data, ensure_ascii=False, indent=2)


__all__ = [
    "CharacterInit",
    "GameTime",
    "LorebookEntry",
    "MEMORY_TYPES",
    "MemoryEvent",
    "MemoryMetadata",
    "MemoryRecord",
    "PERMANENT_TYPES",
    "QueryResult",
    "RecentMessage",
    "StorageResult",
    "dumps_payload",
]

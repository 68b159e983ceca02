"""Assemble and validate the metadata attached to stored records."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import MissingRequiredField, UnknownMemoryType
from .schemas import (
    LOREBOOK,
    MEMORY_TYPES,
    MESSAGE,
    PERMANENT_TYPES,
    WORLD_STATE_UPDATE,
    MemoryMetadata,
)

REQUIRED_FIELDS: Mapping[str, Tuple[str, ...]] = {
    MESSAGE: ("speaker", "participants", "gameTime", "gameTimeInterval"),
    WORLD_STATE_UPDATE: ("gameTime", "gameTimeInterval"),
    LOREBOOK: ("lorebookKey",),
}

_ALIASES: Mapping[str, str] = {
    "game_time": "gameTime",
    "game_time_interval": "gameTimeInterval",
    "interval": "gameTimeInterval",
    "is_speaker": "isSpeaker",
    "lorebook_key": "lorebookKey",
}


def _normalize_fields(fields: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in (fields or {}).items():
        normalized[_ALIASES.get(key, key)] = value
    return normalized


def _is_present(name: str, value: Any) -> bool:
    if value is None:
        return False
    if name == "gameTime":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if name == "participants":
        return isinstance(value, (list, tuple)) and len(value) > 0
    if name == "isSpeaker":
        return isinstance(value, bool)
    if isinstance(value, str):
        return bool(value.strip())
    return True


def is_speaker_for(container_owner: str, speaker: str) -> bool:
    return container_owner == speaker


def build_metadata(
    memory_type: str,
    fields: Optional[Mapping[str, Any]] = None,
    *,
    character_container: bool = False,
    container_owner: Optional[str] = None,
) -> MemoryMetadata:
    """Validate ``fields`` for ``memory_type`` and return typed metadata.

    ``container_owner`` is the character id owning the target container.
    When given, the record is a character-container record and ``isSpeaker``
    is derived from it unless set explicitly in ``fields``.

    Raises :class:`MissingRequiredField` before anything is written.
    """

    if memory_type not in MEMORY_TYPES:
        raise UnknownMemoryType(memory_type)

    values = _normalize_fields(fields)
    values.pop("type", None)

    if container_owner is not None:
        character_container = True
        if values.get("isSpeaker") is None and values.get("speaker") is not None:
            values["isSpeaker"] = is_speaker_for(container_owner, values["speaker"])

    required = list(REQUIRED_FIELDS.get(memory_type, ()))
    if memory_type == MESSAGE and character_container:
        required.append("isSpeaker")
    for name in required:
        if not _is_present(name, values.get(name)):
            raise MissingRequiredField(memory_type, name)

    permanent = values.get("permanent")
    if memory_type in PERMANENT_TYPES:
        if permanent is False:
            raise MissingRequiredField(memory_type, "permanent")
        permanent = True

    participants = values.get("participants") or []
    return MemoryMetadata(
        type=memory_type,
        speaker=values.get("speaker"),
        participants=[str(item) for item in participants],
        game_time=values.get("gameTime"),
        game_time_interval=values.get("gameTimeInterval"),
        is_speaker=values.get("isSpeaker"),
        permanent=permanent,
        lorebook_key=values.get("lorebookKey"),
    )


__all__ = ["REQUIRED_FIELDS", "build_metadata", "is_speaker_for"]

"""Container tags for character and world memory namespaces.

Tags are the only isolation boundary between containers. Every storage and
retrieval operation validates its tag here before touching the backend.
"""

from __future__ import annotations

from .errors import InvalidContainerTag

WORLD_SUFFIX = "-world"


def create_character_container(session_id: str, character_id: str) -> str:
    return validate_character_container(f"{session_id}-{character_id}")


def create_world_container(session_id: str) -> str:
    return validate_world_container(f"{session_id}{WORLD_SUFFIX}")


def is_character_container(tag: object) -> bool:
    return isinstance(tag, str) and bool(tag) and not tag.endswith(WORLD_SUFFIX)


def is_world_container(tag: object) -> bool:
    return isinstance(tag, str) and tag.endswith(WORLD_SUFFIX) and tag != WORLD_SUFFIX


def validate_character_container(tag: object) -> str:
    """Return ``tag`` unchanged, or raise if it names a world container."""

    if not is_character_container(tag):
        raise InvalidContainerTag(tag, "character")
    return tag  # type: ignore[return-value]


def validate_world_container(tag: object) -> str:
    """Return ``tag`` unchanged, or raise if it is not a world container."""

    if not is_world_container(tag):
        raise InvalidContainerTag(tag, "world")
    return tag  # type: ignore[return-value]


__all__ = [
    "WORLD_SUFFIX",
    "create_character_container",
    "create_world_container",
    "is_character_container",
    "is_world_container",
    "validate_character_container",
    "validate_world_container",
]
